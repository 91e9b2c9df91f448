"""
opsdeck.jobs.nodes

Node implementations for the comparison pipeline graph.

Responsibilities:
- prepare: de-duplicate the object list, describe tasks, open the result file.
- compare_task: run one connection-pair task (stream merge + batched deep compare).
- finalize: close the result file and mark the job complete.

Nodes mutate and return the full state; the service layer persists each snapshot.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import AsyncExitStack, aclosing
from dataclasses import dataclass
from datetime import datetime

from opsdeck.clients.oracle import (
    THREE_WAY_EXCLUDED_TYPES,
    TWO_WAY_EXCLUDED_TYPES,
    DdlFetcher,
    OracleClientFactory,
    OracleError,
)
from opsdeck.db.models import JobStatus
from opsdeck.jobs.results import ResultCsvWriter
from opsdeck.jobs.state import CompareState
from opsdeck.observability.logging import get_logger
from opsdeck.oracle.ddl import normalize_ddl
from opsdeck.oracle.merge import (
    CompareTask,
    MergedObject,
    ObjectMeta,
    conclude,
    dedupe_object_list,
    merge_streams,
    new_summary,
    tally,
)
from opsdeck.oracle.models import ObjectRef, OracleConnection
from opsdeck.settings import Settings

log = get_logger(__name__)

# Upper bound on merged rows held before a flush, whatever the deep-compare count.
_MAX_PENDING = 500


@dataclass(slots=True)
class CompareContext:
    tasks: list[CompareTask]
    oracle: OracleClientFactory
    settings: Settings
    writer: ResultCsvWriter
    checkpoint: Callable[[CompareState], Awaitable[None]]


@dataclass(slots=True)
class _Side:
    stream: AsyncIterator[ObjectMeta]
    ddl: DdlFetcher


def add_log(state: CompareState, message: str) -> None:
    state.setdefault("logs", []).append(f"[{datetime.now():%H:%M:%S}] {message}")
    log.info("job_log", message=message)


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(99, round(done / total * 100))


async def prepare_node(state: CompareState, *, ctx: CompareContext) -> CompareState:
    state["status"] = JobStatus.preparing.value
    mode = state["mode"]
    add_log(state, f"Preparing {'three-way' if mode == 'three_way' else 'two-way'} comparison.")

    if mode == "three_way":
        rows = [ObjectRef.model_validate(r) for r in state.get("object_list", [])]
        unique, removed = dedupe_object_list(rows)
        if removed:
            add_log(state, f"Warning: removed {removed} duplicate rows from the object list.")
        state["object_list"] = [r.model_dump() for r in unique]
        state["total"] = len(unique)
    else:
        state["total"] = 0

    summary = new_summary(mode)  # type: ignore[arg-type]
    summary["debug"]["activeTasks"] = len(ctx.tasks)
    state["summary"] = summary
    state["tasks"] = [
        {
            "owners": list(t.owners),
            "master": t.master.name if t.master else None,
            "slave": t.slave.name if t.slave else None,
        }
        for t in ctx.tasks
    ]
    state["total_tasks"] = len(ctx.tasks)
    state["task_index"] = 0
    state["progress"] = 0

    owner_count = sum(len(t.owners) for t in ctx.tasks)
    add_log(state, f"Grouped {owner_count} owners into {len(ctx.tasks)} connection task(s).")

    ctx.writer.open()
    state["result_path"] = str(ctx.writer.path)
    state["status"] = JobStatus.running.value
    return state


async def _chain(first: ObjectMeta | None, rest: AsyncIterator[ObjectMeta]) -> AsyncIterator[ObjectMeta]:
    if first is None:
        return
    yield first
    async for meta in rest:
        yield meta


async def _open_side(
    stack: AsyncExitStack,
    state: CompareState,
    *,
    label: str,
    conn: OracleConnection | None,
    owners: Sequence[str],
    excluded: Sequence[str],
    ctx: CompareContext,
) -> _Side | None:
    if conn is None:
        add_log(state, f"  > No {label} connection configured for this group.")
        return None

    add_log(state, f"  > Connecting to {label}: {conn.name}...")
    client = ctx.oracle(conn)
    try:
        session = await stack.enter_async_context(client.session())
        ddl = await stack.enter_async_context(
            client.ddl_pool(
                min_size=ctx.settings.oracle_pool_min, max_size=ctx.settings.oracle_pool_max
            )
        )
        stream = await stack.enter_async_context(aclosing(session.stream_objects(owners, excluded)))
        # The query runs on the first fetch; failing here still counts as a connection failure.
        first = await anext(stream, None)
    except OracleError as e:
        add_log(state, f"  ! Error connecting/querying {label}: {e.message}")
        return None
    return _Side(stream=_chain(first, stream), ddl=ddl)


async def _deep_compare(
    state: CompareState, item: MergedObject, master: DdlFetcher, slave: DdlFetcher
) -> bool:
    master_ddl, slave_ddl = await asyncio.gather(
        master.fetch_ddl(item.owner, item.name, item.type),
        slave.fetch_ddl(item.owner, item.name, item.type),
    )
    if master_ddl is None or slave_ddl is None:
        add_log(
            state,
            f"  ! Warning: could not fetch DDL for {item.owner}.{item.name} ({item.type}); "
            "marked as different.",
        )
        return False
    return normalize_ddl(master_ddl, item.type) == normalize_ddl(slave_ddl, item.type)


async def _flush(
    state: CompareState,
    pending: list[MergedObject],
    master: _Side | None,
    slave: _Side | None,
    ctx: CompareContext,
) -> None:
    if not pending:
        return
    mode = state["mode"]
    deep = [item for item in pending if item.in_both]
    verdicts: list[bool] = []
    if deep and master is not None and slave is not None:
        verdicts = list(
            await asyncio.gather(*(_deep_compare(state, item, master.ddl, slave.ddl) for item in deep))
        )
    identical = iter(verdicts)

    summary = state["summary"]
    for item in pending:
        conclude(item, mode, next(identical) if item.in_both else None)  # type: ignore[arg-type]
        tally(summary, item)
    ctx.writer.write(pending)

    if mode == "three_way":
        state["progress"] = _percent(summary["processed"], state.get("total", 0))
    else:
        # Two-way totals are discovered as the streams are read.
        state["total"] = summary["processed"]
    await ctx.checkpoint(state)


async def _run_task(state: CompareState, task: CompareTask, ctx: CompareContext) -> None:
    mode = state["mode"]
    summary = state["summary"]
    debug = summary["debug"]

    listed: list[ObjectRef] = []
    excluded = TWO_WAY_EXCLUDED_TYPES
    if mode == "three_way":
        excluded = THREE_WAY_EXCLUDED_TYPES
        owners = {o.upper() for o in task.owners}
        listed = [
            ObjectRef.model_validate(r)
            for r in state.get("object_list", [])
            if r["owner"].upper() in owners
        ]
        debug["excelRows"] += len(listed)

    async with AsyncExitStack() as stack:
        master = await _open_side(
            stack, state, label="Master", conn=task.master, owners=task.owners, excluded=excluded, ctx=ctx
        )
        slave = await _open_side(
            stack, state, label="Slave", conn=task.slave, owners=task.owners, excluded=excluded, ctx=ctx
        )
        add_log(state, "  > Starting stream merge & comparison...")

        pending: list[MergedObject] = []
        deep_count = 0
        async for item in merge_streams(
            master.stream if master else None, slave.stream if slave else None, listed
        ):
            if item.in_master:
                debug["masterRows"] += 1
            if item.in_slave:
                debug["slaveRows"] += 1
            pending.append(item)
            if item.in_both:
                deep_count += 1
            if deep_count >= ctx.settings.compare_batch_size or len(pending) >= _MAX_PENDING:
                await _flush(state, pending, master, slave, ctx)
                pending, deep_count = [], 0
        await _flush(state, pending, master, slave, ctx)

    add_log(state, "  > Task finished. Closing connections.")


async def compare_task_node(state: CompareState, *, ctx: CompareContext) -> CompareState:
    index = state.get("task_index", 0)
    total_tasks = state.get("total_tasks", len(ctx.tasks))
    task = ctx.tasks[index]
    add_log(state, f"[Task {index + 1}/{total_tasks}] Processing owners: {task.label()}")

    try:
        await _run_task(state, task, ctx)
    except Exception as e:
        # One broken task must not sink the rest of the job.
        message = e.message if isinstance(e, OracleError) else str(e)
        add_log(state, f"  ! Task failed: {message}")
        log.warning("compare_task_failed", task=index + 1, error=message)

    state["task_index"] = index + 1
    if state["mode"] == "two_way":
        state["progress"] = _percent(index + 1, total_tasks)
    return state


async def finalize_node(state: CompareState, *, ctx: CompareContext) -> CompareState:
    ctx.writer.close()
    summary = state.get("summary", {})
    add_log(
        state,
        f"All tasks completed. Result generated: {summary.get('processed', 0)} objects, "
        f"{summary.get('diffs', 0)} differences.",
    )
    state["progress"] = 100
    state["status"] = JobStatus.completed.value
    return state


def route_next_task(state: CompareState) -> str:
    if state.get("task_index", 0) < state.get("total_tasks", 0):
        return "compare_task"
    return "finalize"


# --- Module Notes -----------------------------------------------------------
# Merged rows are buffered in stream order and concluded together, so the CSV stays
# sorted by (owner, name, type) within a task even though deep compares run concurrently.
