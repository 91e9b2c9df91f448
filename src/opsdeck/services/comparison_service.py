"""
opsdeck.services.comparison_service

Two-way / three-way comparison job lifecycle (transaction + persistence owner).

Responsibilities:
- Create comparison jobs and hand them to the job runner.
- Execute the pipeline graph with durable per-node (and per-batch) checkpoints.
- Persist job status, progress, summary and log lines; record failures and cancellation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdeck.clients.oracle import OracleClientFactory
from opsdeck.db.models import Job, JobKind, JobStatus
from opsdeck.db.repositories.jobs import JobRepo
from opsdeck.jobs.graph import build_graph, recursion_limit
from opsdeck.jobs.nodes import CompareContext, add_log
from opsdeck.jobs.results import ResultCsvWriter
from opsdeck.jobs.runner import JobRunner
from opsdeck.jobs.state import CompareState
from opsdeck.observability.logging import get_logger, job_context
from opsdeck.oracle.merge import CompareTask, Mode, group_tasks
from opsdeck.oracle.models import ObjectRef, OwnerMapping, ThreeWayRequest, TwoWayRequest
from opsdeck.services.job_service import log_line, new_job_id
from opsdeck.settings import Settings

log = get_logger(__name__)

# Keys kept out of the jobs.state snapshot (logs have their own table; the list is input).
_NOT_SNAPSHOTTED = ("logs", "object_list")

_PREFIXES = {JobKind.two_way: "twoway", JobKind.three_way: "analysis"}
_MODES: dict[JobKind, Mode] = {JobKind.two_way: "two_way", JobKind.three_way: "three_way"}


class _Checkpointer:
    """Persist a state snapshot plus any log lines appended since the last call, then commit."""

    def __init__(self, *, session: AsyncSession, job: Job) -> None:
        self._session = session
        self._jobs = JobRepo(session)
        self._job = job
        self._persisted_logs = 0

    async def __call__(
        self,
        state: CompareState,
        *,
        status: JobStatus | None = None,
        error: str | None = None,
    ) -> None:
        if status is None and state.get("status"):
            status = JobStatus(state["status"])
        await self._jobs.checkpoint(
            self._job,
            status=status,
            progress=state.get("progress"),
            total=state.get("total"),
            total_tasks=state.get("total_tasks"),
            summary=state.get("summary"),
            state={k: v for k, v in state.items() if k not in _NOT_SNAPSHOTTED},
            result_path=state.get("result_path"),
            error=error,
        )
        logs = state.get("logs", [])
        await self._jobs.add_logs(self._job.id, logs[self._persisted_logs :])
        self._persisted_logs = len(logs)
        await self._session.commit()

    async def recover(self) -> None:
        # A failure may have left the transaction unusable; start clean from the DB row.
        await self._session.rollback()
        await self._session.refresh(self._job)


class ComparisonService:
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

    async def start_two_way(self, body: TwoWayRequest) -> str:
        return await self._start(JobKind.two_way, body.owner_mappings, [])

    async def start_three_way(self, body: ThreeWayRequest) -> str:
        return await self._start(JobKind.three_way, body.owner_mappings, body.excel_data)

    async def _start(
        self,
        kind: JobKind,
        mappings: dict[str, OwnerMapping],
        object_list: list[ObjectRef],
    ) -> str:
        job_id = new_job_id(_PREFIXES[kind])
        owners: Iterable[str] = mappings.keys()
        if kind == JobKind.three_way:
            # Only owners that appear in the object list are compared.
            owners = dict.fromkeys(r.owner for r in object_list)
        tasks = group_tasks(owners, mappings)

        async with self._sessionmaker() as session:
            jobs = JobRepo(session)
            await jobs.create(
                job_id=job_id,
                kind=kind,
                total=len(object_list),
                state={"job_id": job_id, "mode": _MODES[kind]},
            )
            await jobs.add_logs(job_id, [log_line(f"Job {job_id} created.")])
            await session.commit()

        initial: CompareState = {
            "job_id": job_id,
            "mode": _MODES[kind],
            "object_list": [r.model_dump() for r in object_list],
            "logs": [],
        }
        self._runner.spawn(job_id, self._run(job_id, kind, tasks, initial))
        return job_id

    async def _run(
        self, job_id: str, kind: JobKind, tasks: list[CompareTask], state: CompareState
    ) -> None:
        with job_context(job_id=job_id, kind=kind.value):
            async with self._sessionmaker() as session:
                job = await JobRepo(session).get(job_id)
                if job is None:
                    log.error("job_missing", job_id=job_id)
                    return

                checkpoint = _Checkpointer(session=session, job=job)
                writer = ResultCsvWriter(
                    self._settings.jobs_dir / job_id / "result.csv",
                    with_object_list=kind == JobKind.three_way,
                )
                ctx = CompareContext(
                    tasks=tasks,
                    oracle=self._oracle,
                    settings=self._settings,
                    writer=writer,
                    checkpoint=checkpoint,
                )
                graph = build_graph(ctx=ctx)

                try:
                    await self._execute_with_checkpoints(
                        graph=graph, state=state, checkpoint=checkpoint, task_count=len(tasks)
                    )
                    log.info("job_completed", summary=state.get("summary"))
                except asyncio.CancelledError:
                    await checkpoint.recover()
                    add_log(state, "Job cancelled.")
                    await checkpoint(state, status=JobStatus.cancelled)
                    log.info("job_cancelled")
                    raise
                except Exception as e:
                    log.exception("job_failed")
                    await checkpoint.recover()
                    add_log(state, f"Job failed: {e}")
                    await checkpoint(state, status=JobStatus.error, error=str(e))
                finally:
                    writer.close()

    async def _execute_with_checkpoints(
        self,
        *,
        graph: Any,
        state: CompareState,
        checkpoint: _Checkpointer,
        task_count: int,
    ) -> None:
        """
        Persist the job after each node update (LangGraph stream_mode='updates').

        Nodes return the full state, so each update is a complete snapshot.
        """

        config = {"recursion_limit": recursion_limit(task_count)}
        async for update in graph.astream(state, config=config, stream_mode="updates"):
            if not isinstance(update, dict) or not update:
                continue
            _, node_state = next(iter(update.items()))
            if isinstance(node_state, dict):
                # Keep the caller's dict current so failure handling sees the latest logs.
                state.update(node_state)
            await checkpoint(state)


# --- Module Notes -----------------------------------------------------------
# Every background job uses its own DB session; request handlers only ever read the rows
# it commits. Connection credentials stay in memory (inside `CompareTask`) for the job's life.
