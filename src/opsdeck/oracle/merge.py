"""
opsdeck.oracle.merge

Sorted stream merge for environment comparison.

Responsibilities:
- Group owners into tasks so each connection pair is opened once.
- Merge per-side metadata streams (and, for three-way, the object list) on
  `(owner, name, type)` and record where each object is present.
- Derive the conclusion for a merged object and tally it into the job summary.

Both sides must be sorted the same way the merge compares keys: upper-cased
`(owner, name, type)` tuples. Oracle's `ORDER BY owner, object_name, object_type`
gives that order for dictionary names under binary sort.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from opsdeck.oracle.models import ObjectRef, OracleConnection, OwnerMapping

Mode = Literal["two_way", "three_way"]
ConclusionType = Literal["success", "info", "warning", "error"]
Key = tuple[str, str, str]

# Two-way
MATCH = "Match"
CONTENT_MISMATCH = "Content Mismatch"
MISSING_IN_SLAVE = "Missing in Slave"
MISSING_IN_MASTER = "Missing in Master"

# Three-way
ALREADY_SYNCED = "Already synced"
IDENTICAL_UNLISTED = "Identical (not in object list)"
REGISTERED_CHANGE = "Registered change (ready to sync)"
UNREGISTERED_CHANGE = "Changed but not registered in object list"
SOURCE_MISSING_IN_MASTER = "Source missing (present in master)"
NOT_YET_PROMOTED = "Object not yet promoted"
NEW_OBJECT = "New object (ready to promote to master)"
UNREGISTERED_IN_SLAVE = "Unregistered object in slave"
SOURCE_MISSING_LISTED_ONLY = "Source missing (only in object list)"

_NEW_CONCLUSIONS = frozenset({MISSING_IN_MASTER, NEW_OBJECT})


@dataclass(frozen=True, slots=True)
class ObjectMeta:
    owner: str
    name: str
    type: str
    status: str | None = None
    last_ddl_time: Any = None

    @property
    def key(self) -> Key:
        return object_key(self.owner, self.name, self.type)


@dataclass(slots=True)
class MergedObject:
    owner: str
    name: str
    type: str
    in_master: bool
    in_slave: bool
    in_excel: bool = False
    master_status: str | None = None
    slave_status: str | None = None
    conclusion: str = ""
    conclusion_type: ConclusionType = "info"

    @property
    def in_both(self) -> bool:
        return self.in_master and self.in_slave


@dataclass(slots=True)
class CompareTask:
    master: OracleConnection | None
    slave: OracleConnection | None
    owners: list[str] = field(default_factory=list)

    def label(self) -> str:
        shown = ", ".join(self.owners[:3])
        if len(self.owners) > 3:
            shown += f"... (+{len(self.owners) - 3})"
        return shown


def object_key(owner: str | None, name: str | None, object_type: str | None) -> Key:
    return ((owner or "").upper(), (name or "").upper(), (object_type or "").upper())


def group_tasks(owners: Iterable[str], mappings: Mapping[str, OwnerMapping]) -> list[CompareTask]:
    """Group owners by `(master.id, slave.id)`; owners mapped to neither side are skipped."""

    tasks: dict[tuple[str | None, str | None], CompareTask] = {}
    for owner in owners:
        mapping = mappings.get(owner)
        if mapping is None or (mapping.master is None and mapping.slave is None):
            continue
        key = (
            mapping.master.id if mapping.master else None,
            mapping.slave.id if mapping.slave else None,
        )
        task = tasks.get(key)
        if task is None:
            task = tasks[key] = CompareTask(master=mapping.master, slave=mapping.slave)
        task.owners.append(owner)
    return list(tasks.values())


def dedupe_object_list(rows: Sequence[ObjectRef]) -> tuple[list[ObjectRef], int]:
    """Drop repeated `owner|name|type` rows (first wins) and sort; return `(rows, removed)`."""

    seen: dict[tuple[str, str, str], ObjectRef] = {}
    for row in rows:
        seen.setdefault((row.owner, row.name, row.type), row)
    unique = sorted(seen.values(), key=lambda r: object_key(r.owner, r.name, r.type))
    return unique, len(rows) - len(unique)


async def _next(it: AsyncIterator[ObjectMeta] | None) -> ObjectMeta | None:
    if it is None:
        return None
    try:
        return await anext(it)
    except StopAsyncIteration:
        return None


async def merge_streams(
    master: AsyncIterator[ObjectMeta] | None,
    slave: AsyncIterator[ObjectMeta] | None,
    listed: Sequence[ObjectRef] | None = None,
) -> AsyncIterator[MergedObject]:
    """
    Walk up to three sorted sources in lock-step, always taking the smallest key.

    A missing side (`None`) behaves as an empty stream. Every source advances only
    when its current key was the one emitted, so each distinct key is yielded once.
    """

    listed = listed or []
    m = await _next(master)
    s = await _next(slave)
    e_idx = 0

    while True:
        e = listed[e_idx] if e_idx < len(listed) else None
        keys: list[Key] = []
        if m is not None:
            keys.append(m.key)
        if s is not None:
            keys.append(s.key)
        if e is not None:
            keys.append(object_key(e.owner, e.name, e.type))
        if not keys:
            return

        current = min(keys)
        in_master = m is not None and m.key == current
        in_slave = s is not None and s.key == current
        in_excel = e is not None and object_key(e.owner, e.name, e.type) == current

        source: Any = m if in_master else (s if in_slave else e)
        yield MergedObject(
            owner=source.owner,
            name=source.name,
            type=source.type,
            in_master=in_master,
            in_slave=in_slave,
            in_excel=in_excel,
            master_status=m.status if in_master else None,
            slave_status=s.status if in_slave else None,
        )

        if in_master:
            m = await _next(master)
        if in_slave:
            s = await _next(slave)
        if in_excel:
            e_idx += 1


def conclude(item: MergedObject, mode: Mode, identical: bool | None = None) -> MergedObject:
    """
    Fill in `conclusion` / `conclusion_type`.

    `identical` is only consulted for objects present on both sides (the deep compare
    result); any other value than True counts as different.
    """

    if mode == "two_way":
        if item.in_both:
            item.conclusion, item.conclusion_type = (
                (MATCH, "success") if identical is True else (CONTENT_MISMATCH, "warning")
            )
        elif item.in_master:
            item.conclusion, item.conclusion_type = MISSING_IN_SLAVE, "error"
        else:
            item.conclusion, item.conclusion_type = MISSING_IN_MASTER, "info"
        return item

    listed = item.in_excel
    if item.in_both:
        if identical is True:
            item.conclusion = ALREADY_SYNCED if listed else IDENTICAL_UNLISTED
            item.conclusion_type = "success"
        elif listed:
            item.conclusion, item.conclusion_type = REGISTERED_CHANGE, "info"
        else:
            item.conclusion, item.conclusion_type = UNREGISTERED_CHANGE, "warning"
    elif item.in_master:
        item.conclusion, item.conclusion_type = (
            (SOURCE_MISSING_IN_MASTER, "error") if listed else (NOT_YET_PROMOTED, "warning")
        )
    elif item.in_slave:
        item.conclusion, item.conclusion_type = (
            (NEW_OBJECT, "info") if listed else (UNREGISTERED_IN_SLAVE, "warning")
        )
    else:
        item.conclusion, item.conclusion_type = SOURCE_MISSING_LISTED_ONLY, "error"
    return item


def new_summary(mode: Mode) -> dict[str, Any]:
    debug: dict[str, int] = {"masterRows": 0, "slaveRows": 0, "activeTasks": 0}
    if mode == "three_way":
        debug["excelRows"] = 0
    return {"processed": 0, "diffs": 0, "missing": 0, "new": 0, "debug": debug}


def tally(summary: dict[str, Any], item: MergedObject) -> None:
    summary["processed"] += 1
    if item.conclusion_type != "success":
        summary["diffs"] += 1
    if item.conclusion_type == "error" and "missing" in item.conclusion.lower():
        summary["missing"] += 1
    if item.conclusion in _NEW_CONCLUSIONS:
        summary["new"] += 1
