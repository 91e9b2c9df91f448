"""
opsdeck.db.repositories.jobs

Repository for `Job` and `JobLog` entities.

Responsibilities:
- Create and fetch jobs.
- Persist checkpoints (status, progress, summary, state snapshot).
- Append log lines in order and read them back.
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdeck.db.models import Job, JobKind, JobLog, JobStatus


class JobRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        job_id: str,
        kind: JobKind,
        total: int = 0,
        state: dict[str, Any] | None = None,
    ) -> Job:
        job = Job(
            id=job_id,
            kind=kind,
            status=JobStatus.starting,
            progress=0,
            total=total,
            total_tasks=0,
            summary={},
            state=state or {},
        )
        self._session.add(job)
        await self._session.flush()
        return job

    async def get(self, job_id: str) -> Job | None:
        return await self._session.get(Job, job_id)

    async def checkpoint(
        self,
        job: Job,
        *,
        status: JobStatus | None = None,
        progress: int | None = None,
        total: int | None = None,
        total_tasks: int | None = None,
        summary: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
        result_path: str | None = None,
        error: str | None = None,
    ) -> Job:
        if status is not None:
            job.status = status
        if progress is not None:
            job.progress = progress
        if total is not None:
            job.total = total
        if total_tasks is not None:
            job.total_tasks = total_tasks
        if summary is not None:
            # JSON columns only notice reassignment of an unequal value.
            job.summary = copy.deepcopy(summary)
        if state is not None:
            job.state = copy.deepcopy(state)
        if result_path is not None:
            job.result_path = result_path
        if error is not None:
            job.error = error
        job.updated_at = datetime.utcnow()
        await self._session.flush()
        return job

    async def add_logs(self, job_id: str, messages: list[str]) -> None:
        if not messages:
            return
        stmt = select(func.coalesce(func.max(JobLog.seq), 0)).where(JobLog.job_id == job_id)
        seq = int((await self._session.execute(stmt)).scalar_one())
        for message in messages:
            seq += 1
            self._session.add(JobLog(job_id=job_id, seq=seq, message=message))
        await self._session.flush()

    async def list_logs(self, job_id: str) -> list[str]:
        stmt = select(JobLog.message).where(JobLog.job_id == job_id).order_by(JobLog.seq)
        return list((await self._session.execute(stmt)).scalars().all())

    async def fail_unfinished(self, message: str) -> int:
        """Mark jobs left non-terminal by a previous process as ERROR; returns the count."""

        stmt = select(Job).where(
            Job.status.in_([JobStatus.starting, JobStatus.preparing, JobStatus.running])
        )
        jobs = list((await self._session.execute(stmt)).scalars().all())
        for job in jobs:
            await self.checkpoint(job, status=JobStatus.error, error=message)
        return len(jobs)
