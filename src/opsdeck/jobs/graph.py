"""
opsdeck.jobs.graph

LangGraph wiring for the comparison pipeline.

    prepare -> compare_task (once per connection task) -> finalize
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from langgraph.graph import END, StateGraph

from opsdeck.jobs.nodes import (
    CompareContext,
    compare_task_node,
    finalize_node,
    prepare_node,
    route_next_task,
)
from opsdeck.jobs.state import CompareState

_ROUTES = {"compare_task": "compare_task", "finalize": "finalize"}


def build_graph(*, ctx: CompareContext):
    """
    Returns a compiled LangGraph runnable.
    """

    graph = StateGraph(CompareState)

    graph.add_node("prepare", _bind_context(prepare_node, ctx))
    graph.add_node("compare_task", _bind_context(compare_task_node, ctx))
    graph.add_node("finalize", _bind_context(finalize_node, ctx))

    graph.set_entry_point("prepare")
    graph.add_conditional_edges("prepare", route_next_task, _ROUTES)
    graph.add_conditional_edges("compare_task", route_next_task, _ROUTES)
    graph.add_edge("finalize", END)

    return graph.compile()


def recursion_limit(task_count: int) -> int:
    # One super-step per task plus prepare/finalize, with headroom.
    return task_count + 10


def _bind_context(
    fn: Callable[..., Awaitable[CompareState]],
    ctx: CompareContext,
) -> Callable[[CompareState], Awaitable[CompareState]]:
    async def _wrapped(state: CompareState) -> CompareState:
        return await fn(state, ctx=ctx)

    return _wrapped
