"""
opsdeck.jobs.throttle

Bounded fan-out primitive.

Responsibilities:
- Run a worker over every item with at most N workers in flight.
- Return per-item outcomes in input order; one failure never cancels siblings.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class Outcome(Generic[T, R]):
    item: T
    result: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[Outcome[T, R]]:
    """
    Attempt `worker(item)` for every item, `concurrency` at a time (values below 1 mean 1).

    Exceptions are captured into the item's `Outcome`; cancellation still propagates.
    """

    gate = asyncio.Semaphore(max(1, concurrency))

    async def _one(item: T) -> Outcome[T, R]:
        async with gate:
            try:
                return Outcome(item=item, result=await worker(item))
            except Exception as e:
                return Outcome(item=item, error=e)

    return list(await asyncio.gather(*(_one(item) for item in items)))
