"""
opsdeck.clients.dashboard_api

Client for this service's own job endpoints (scripts, CLIs and tests).

Responsibilities:
- Start comparison/backup jobs.
- Poll a job-status endpoint at a fixed interval until the job reaches a terminal state.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from opsdeck.settings import Settings

TERMINAL_STATUSES = frozenset({"COMPLETED", "ERROR", "CANCELLED"})


class DashboardApiClient:
    def __init__(self, *, http: httpx.AsyncClient, poll_interval: float = 1.0) -> None:
        self._http = http
        self._poll_interval = poll_interval

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> DashboardApiClient:
        return cls(http=http, poll_interval=settings.job_poll_interval)

    async def start_job(self, path: str, payload: dict[str, Any]) -> str:
        r = await self._http.post(path, json=payload)
        r.raise_for_status()
        return r.json()["jobId"]

    async def job_status(self, path: str, job_id: str) -> dict[str, Any]:
        r = await self._http.get(path, params={"jobId": job_id})
        r.raise_for_status()
        return r.json()

    async def wait_for_job(
        self,
        path: str,
        job_id: str,
        *,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Poll `GET {path}?jobId=...` until status is COMPLETED, ERROR or CANCELLED.

        Raises `TimeoutError` when `timeout` seconds pass first. HTTP errors propagate
        (`httpx.HTTPStatusError`), including 404 for an unknown job.
        """

        every = self._poll_interval if interval is None else interval
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            status = await self.job_status(path, job_id)
            if status.get("status") in TERMINAL_STATUSES:
                return status
            if deadline is not None and time.monotonic() + every > deadline:
                raise TimeoutError(f"job {job_id} still {status.get('status')} after {timeout}s")
            await asyncio.sleep(every)
