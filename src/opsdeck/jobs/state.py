"""
opsdeck.jobs.state

Typed state schema for the comparison pipeline graph.

Responsibilities:
- Define the contract between pipeline nodes.
- Provide a JSON-safe shape for persistence (stored in jobs.state).

Connection credentials never enter this state; nodes reach them through the bound
`CompareContext` instead.
"""

from __future__ import annotations

from typing import Any, TypedDict


class TaskDescriptor(TypedDict):
    owners: list[str]
    master: str | None
    slave: str | None


class CompareState(TypedDict, total=False):
    # Identifiers
    job_id: str
    mode: str

    # Inputs
    tasks: list[TaskDescriptor]
    object_list: list[dict[str, str]]

    # Progress
    status: str
    task_index: int
    total: int
    total_tasks: int
    progress: int
    summary: dict[str, Any]

    # Output
    logs: list[str]
    result_path: str


# --- Module Notes -----------------------------------------------------------
# total=False because the service seeds only the identifiers; `prepare` fills in the rest.
