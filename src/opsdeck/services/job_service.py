"""
opsdeck.services.job_service

Job lookup, status rendering and cancellation (shared by every job kind).

Responsibilities:
- Generate job ids and timestamped log lines.
- Render the polling status document.
- Resolve downloadable job outputs.
- Cancel running jobs and repair orphaned ones.
"""

from __future__ import annotations

import random
import string
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from opsdeck.db.models import Job, JobKind, JobStatus
from opsdeck.db.repositories.jobs import JobRepo
from opsdeck.errors import InvalidRequest, NotFound
from opsdeck.jobs.runner import JobRunner

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_job_id(prefix: str, *, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"{prefix}_{stamp}_{''.join(random.choices(_ID_ALPHABET, k=5))}"


def log_line(message: str) -> str:
    return f"[{datetime.now():%H:%M:%S}] {message}"


def backup_counts(items: list[dict[str, Any]]) -> dict[str, int]:
    return {
        "total": len(items),
        "success": sum(1 for i in items if i.get("status") == "SUCCESS"),
        "failed": sum(1 for i in items if i.get("status") == "ERROR"),
    }


def status_document(job: Job, logs: list[str]) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "id": job.id,
        "kind": job.kind.value,
        "status": job.status.value,
        "progress": job.progress,
        "total": job.total,
        "totalTasks": job.total_tasks,
        "logs": logs,
        "summary": job.summary or {},
        "error": job.error,
    }
    if job.kind == JobKind.backup:
        items = list((job.state or {}).get("items") or [])
        doc["items"] = items
        doc["counts"] = backup_counts(items)
    return doc


class JobService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._jobs = JobRepo(session)

    async def get(self, job_id: str, kind: JobKind | None = None) -> Job:
        job = await self._jobs.get(job_id) if job_id else None
        if job is None or (kind is not None and job.kind != kind):
            raise NotFound("Job not found")
        return job

    async def status(self, job_id: str, kind: JobKind | None = None) -> dict[str, Any]:
        job = await self.get(job_id, kind)
        return status_document(job, await self._jobs.list_logs(job.id))

    async def completed_output(self, job_id: str, kind: JobKind) -> Path:
        job = await self.get(job_id, kind)
        if job.status != JobStatus.completed:
            raise InvalidRequest("Job is not completed yet", details={"status": job.status.value})
        if not job.result_path or not Path(job.result_path).exists():
            raise NotFound("Result file not found")
        return Path(job.result_path)

    async def cancel(self, job_id: str, runner: JobRunner) -> dict[str, Any]:
        job = await self.get(job_id)
        if not await runner.cancel(job_id):
            await self._session.refresh(job)
            if not job.status.is_terminal:
                # Not running in this process (left over from a restart).
                await self._jobs.checkpoint(job, status=JobStatus.cancelled)
                await self._jobs.add_logs(job.id, [log_line("Job cancelled.")])
                await self._session.commit()
        else:
            await self._session.refresh(job)
        return status_document(job, await self._jobs.list_logs(job.id))


# --- Module Notes -----------------------------------------------------------
# Job ids follow the dashboard convention `<prefix>_YYYYMMDDHHMMSS_xxxxx`.
