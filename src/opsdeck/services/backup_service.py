"""
opsdeck.services.backup_service

DDL backup job lifecycle.

Responsibilities:
- Validate the request and build the work queue (ALL: every object of each connection;
  LIST: the listed objects of mapped owners).
- Fetch DDL for each queued object with bounded concurrency and write it to the job directory.
- Package the result as a zip archive and an XLSX report.
"""

from __future__ import annotations

import asyncio
import io
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdeck.clients.oracle import OracleClientFactory, OracleError
from opsdeck.db.models import JobKind, JobStatus
from opsdeck.db.repositories.jobs import JobRepo
from opsdeck.errors import InvalidRequest
from opsdeck.jobs.runner import JobRunner
from opsdeck.jobs.throttle import run_bounded
from opsdeck.observability.logging import get_logger, job_context
from opsdeck.oracle.models import BackupRequest, ObjectRef, OracleConnection
from opsdeck.services.job_service import backup_counts, log_line, new_job_id
from opsdeck.settings import Settings

log = get_logger(__name__)

REPORT_HEADER = ["Status", "Object Name", "Type", "Owner", "Message"]


def ddl_filename(owner: str, object_type: str, name: str) -> str:
    return f"{owner}.{object_type.replace(' ', '_')}.{name}.SQL".upper()


def build_report(items: list[dict[str, Any]], *, exported_at: datetime | None = None) -> bytes:
    """XLSX: export date and counts, three blank rows, then one row per object."""

    counts = backup_counts(items)
    wb = Workbook()
    ws = wb.active
    ws.title = "Backup Report"
    ws.append(["Export Date", (exported_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")])
    ws.append(["Total Success", counts["success"]])
    ws.append(["Total Failed", counts["failed"]])
    for _ in range(3):
        ws.append([])
    ws.append(REPORT_HEADER)
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)
    for item in items:
        ws.append(
            [item["status"], item["name"], item["type"], item["owner"], item.get("message") or ""]
        )

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def zip_directory(directory: Path) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        if directory.is_dir():
            for path in sorted(directory.iterdir()):
                if path.is_file():
                    zf.write(path, arcname=path.name)
    return buf.getvalue()


class BackupService:
    def __init__(
        self,
        *,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: Settings,
        oracle: OracleClientFactory,
        runner: JobRunner,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._settings = settings
        self._oracle = oracle
        self._runner = runner

    async def _test_connection(self, conn: OracleConnection) -> list[dict[str, Any]] | None:
        """Ping; for ALL mode the caller also wants the object list, so return it."""

        if not conn.is_complete:
            raise InvalidRequest(f"Connection [{conn.name}] Failed: Missing connection details")
        try:
            async with self._oracle(conn).session() as session:
                await session.ping()
                return await session.list_user_objects()
        except OracleError as e:
            raise InvalidRequest(f"Connection [{conn.name}] Failed: {e.message}") from e

    async def _build_queue(
        self, body: BackupRequest
    ) -> tuple[list[dict[str, Any]], dict[str, OracleConnection]]:
        queue: list[dict[str, Any]] = []
        connections: dict[str, OracleConnection] = {}

        if body.mode == "ALL":
            for conn in body.connections:
                objects = await self._test_connection(conn) or []
                connections[conn.id] = conn
                for obj in objects:
                    queue.append(
                        {"owner": conn.username, "name": obj["name"], "type": obj["type"], "conn": conn.id}
                    )
        else:
            mapped: list[tuple[ObjectRef, OracleConnection]] = []
            missing: set[str] = set()
            for item in body.items:
                conn = body.owner_mappings.get(item.owner)
                if conn is None:
                    missing.add(item.owner)
                else:
                    mapped.append((item, conn))
            if missing:
                raise InvalidRequest(f"Please map connection for owners: {', '.join(sorted(missing))}")
            for item, conn in mapped:
                if conn.id not in connections:
                    await self._test_connection(conn)
                    connections[conn.id] = conn
                queue.append({"owner": item.owner, "name": item.name, "type": item.type, "conn": conn.id})

        if not queue:
            raise InvalidRequest("No objects found to backup.")
        return queue, connections

    async def start(self, body: BackupRequest) -> str:
        queue, connections = await self._build_queue(body)
        concurrency = body.concurrency or self._settings.backup_default_concurrency

        job_id = new_job_id("backup")
        items = [
            {"owner": q["owner"], "name": q["name"], "type": q["type"], "status": "PENDING", "message": None}
            for q in queue
        ]
        logs = [log_line(f"Backup job {job_id} created for {len(items)} objects.")]
        if concurrency > self._settings.backup_warn_concurrency:
            logs.append(log_line(f"Warning: concurrency {concurrency} may overload the database."))

        async with self._sessionmaker() as session:
            jobs = JobRepo(session)
            await jobs.create(
                job_id=job_id,
                kind=JobKind.backup,
                total=len(items),
                state={"items": items, "concurrency": concurrency},
            )
            await jobs.add_logs(job_id, logs)
            await session.commit()

        conn_by_index = [connections[q["conn"]] for q in queue]
        self._runner.spawn(job_id, self._run(job_id, items, conn_by_index, concurrency))
        return job_id

    async def _run(
        self,
        job_id: str,
        items: list[dict[str, Any]],
        conns: list[OracleConnection],
        concurrency: int,
    ) -> None:
        ddl_dir = self._settings.jobs_dir / job_id / "ddl"
        # One AsyncSession must not be used by several workers at once.
        lock = asyncio.Lock()
        done = 0

        with job_context(job_id=job_id, kind=JobKind.backup.value):
            async with self._sessionmaker() as session:
                jobs = JobRepo(session)
                job = await jobs.get(job_id)
                if job is None:
                    log.error("job_missing", job_id=job_id)
                    return

                async def persist(*, status: JobStatus | None = None, lines: list[str] | None = None) -> None:
                    async with lock:
                        await jobs.checkpoint(
                            job,
                            status=status,
                            progress=round(done / len(items) * 100) if items else 100,
                            state={"items": [dict(i) for i in items], "concurrency": concurrency},
                        )
                        await jobs.add_logs(job_id, lines or [])
                        await session.commit()

                async def backup_one(index: int) -> None:
                    nonlocal done
                    item = items[index]
                    item["status"] = "PROCESSING"
                    try:
                        async with self._oracle(conns[index]).session() as ora:
                            await ora.set_deep_compare_transforms()
                            ddl = await ora.get_ddl(item["owner"], item["name"], item["type"])
                        if not ddl:
                            raise OracleError("Object not found or DDL empty")
                        (ddl_dir / ddl_filename(item["owner"], item["type"], item["name"])).write_text(
                            ddl, encoding="utf-8"
                        )
                        item["status"] = "SUCCESS"
                        line = None
                    except Exception as e:
                        message = e.message if isinstance(e, OracleError) else str(e)
                        item["status"] = "ERROR"
                        item["message"] = message
                        line = log_line(f"Error backing up {item['owner']}.{item['name']}: {message}")
                    finally:
                        done += 1
                    await persist(lines=[line] if line else None)

                try:
                    ddl_dir.mkdir(parents=True, exist_ok=True)
                    await persist(status=JobStatus.running)
                    outcomes = await run_bounded(list(range(len(items))), backup_one, concurrency)
                    for outcome in outcomes:
                        if not outcome.ok:
                            log.error("backup_item_crashed", index=outcome.item, error=str(outcome.error))
                    counts = backup_counts(items)
                    await jobs.checkpoint(job, result_path=str(ddl_dir))
                    await persist(
                        status=JobStatus.completed,
                        lines=[
                            log_line(
                                f"Backup finished: {counts['success']} succeeded, {counts['failed']} failed."
                            )
                        ],
                    )
                except asyncio.CancelledError:
                    await session.rollback()
                    await session.refresh(job)
                    await persist(status=JobStatus.cancelled, lines=[log_line("Job cancelled.")])
                    raise
                except Exception as e:
                    log.exception("job_failed")
                    await session.rollback()
                    await session.refresh(job)
                    await jobs.checkpoint(job, error=str(e))
                    await persist(status=JobStatus.error, lines=[log_line(f"Job failed: {e}")])


# --- Module Notes -----------------------------------------------------------
# Item statuses go PENDING -> PROCESSING -> SUCCESS | ERROR and live in jobs.state["items"].
