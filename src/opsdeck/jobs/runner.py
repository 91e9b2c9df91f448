"""
opsdeck.jobs.runner

In-process registry of running background jobs.

Responsibilities:
- Start a job coroutine as its own asyncio task and track it by job id.
- Cancel one job on request, or every job on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from opsdeck.observability.logging import get_logger

log = get_logger(__name__)


class JobRunner:
    def __init__(self) -> None:
        # Active tasks keyed by job id.
        self._active: dict[str, asyncio.Task[None]] = {}

    def spawn(self, job_id: str, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=f"job-{job_id}")
        self._active[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._on_done(jid, t))
        log.info("job_spawned", job_id=job_id)
        return task

    def is_running(self, job_id: str) -> bool:
        task = self._active.get(job_id)
        return task is not None and not task.done()

    async def cancel(self, job_id: str) -> bool:
        task = self._active.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        # Wait so the job has recorded its CANCELLED status before we answer.
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def shutdown(self) -> None:
        if not self._active:
            return
        log.info("jobs_cancelled_on_shutdown", count=len(self._active))
        tasks = list(self._active.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._active.clear()

    def _on_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._active.pop(job_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("job_crashed", job_id=job_id, error=str(exc))
