"""
tests.test_merge

Sorted stream merge, conclusions and summary tallies.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from opsdeck.oracle import merge
from opsdeck.oracle.merge import (
    MergedObject,
    ObjectMeta,
    conclude,
    dedupe_object_list,
    group_tasks,
    merge_streams,
    new_summary,
    object_key,
    tally,
)
from opsdeck.oracle.models import ObjectRef, OracleConnection, OwnerMapping


async def _stream(*rows: tuple[str, str, str]) -> AsyncIterator[ObjectMeta]:
    for owner, name, object_type in rows:
        yield ObjectMeta(owner=owner, name=name, type=object_type, status="VALID")


async def _collect(it: AsyncIterator[MergedObject]) -> list[MergedObject]:
    return [item async for item in it]


def _flags(items: list[MergedObject]) -> list[tuple[str, bool, bool, bool]]:
    return [(i.name, i.in_master, i.in_slave, i.in_excel) for i in items]


def test_object_key_is_case_insensitive() -> None:
    assert object_key("app", "Orders", "table") == ("APP", "ORDERS", "TABLE")
    assert object_key(None, None, None) == ("", "", "")


def test_group_tasks_by_connection_pair() -> None:
    m1 = OracleConnection(id="m1", name="Master 1")
    m2 = OracleConnection(id="m2", name="Master 2")
    s1 = OracleConnection(id="s1", name="Slave 1")
    mappings = {
        "A": OwnerMapping(master=m1, slave=s1),
        "B": OwnerMapping(master=m1, slave=s1),
        "C": OwnerMapping(master=m2, slave=s1),
        "D": OwnerMapping(),
        "E": OwnerMapping(slave=s1),
    }

    tasks = group_tasks(["A", "B", "C", "D", "E", "UNMAPPED"], mappings)

    assert [t.owners for t in tasks] == [["A", "B"], ["C"], ["E"]]
    assert tasks[0].master is m1 and tasks[0].slave is s1
    assert tasks[2].master is None


def test_task_label_truncates_long_owner_lists() -> None:
    task = merge.CompareTask(master=None, slave=None, owners=["A", "B", "C", "D", "E"])
    assert task.label() == "A, B, C... (+2)"
    assert merge.CompareTask(master=None, slave=None, owners=["A"]).label() == "A"


def test_dedupe_object_list_keeps_first_and_sorts() -> None:
    rows = [
        ObjectRef(owner="APP", name="T2", type="TABLE"),
        ObjectRef(owner="APP", name="T1", type="TABLE"),
        ObjectRef(owner="APP", name="T2", type="TABLE"),
    ]
    unique, removed = dedupe_object_list(rows)
    assert removed == 1
    assert [r.name for r in unique] == ["T1", "T2"]


@pytest.mark.asyncio
async def test_two_sided_merge_emits_each_key_once() -> None:
    master = _stream(("APP", "A", "TABLE"), ("APP", "B", "VIEW"), ("APP", "D", "TABLE"))
    slave = _stream(("APP", "B", "VIEW"), ("APP", "C", "TABLE"), ("APP", "D", "TABLE"))

    items = await _collect(merge_streams(master, slave))

    assert _flags(items) == [
        ("A", True, False, False),
        ("B", True, True, False),
        ("C", False, True, False),
        ("D", True, True, False),
    ]
    assert items[1].master_status == "VALID"
    assert items[0].slave_status is None


@pytest.mark.asyncio
async def test_same_name_different_type_are_distinct() -> None:
    master = _stream(("APP", "PKG", "PACKAGE"), ("APP", "PKG", "PACKAGE BODY"))
    slave = _stream(("APP", "PKG", "PACKAGE"))

    items = await _collect(merge_streams(master, slave))

    assert [(i.type, i.in_slave) for i in items] == [("PACKAGE", True), ("PACKAGE BODY", False)]


@pytest.mark.asyncio
async def test_missing_side_behaves_as_empty() -> None:
    items = await _collect(merge_streams(None, _stream(("APP", "A", "TABLE"))))
    assert _flags(items) == [("A", False, True, False)]
    assert await _collect(merge_streams(None, None)) == []


@pytest.mark.asyncio
async def test_three_sided_merge_with_object_list() -> None:
    master = _stream(("APP", "A", "TABLE"), ("APP", "C", "VIEW"))
    slave = _stream(("APP", "A", "TABLE"), ("APP", "B", "TABLE"))
    listed = [
        ObjectRef(owner="app", name="b", type="table"),
        ObjectRef(owner="APP", name="Z", type="TABLE"),
    ]

    items = await _collect(merge_streams(master, slave, listed))

    assert _flags(items) == [
        ("A", True, True, False),
        ("B", False, True, True),
        ("C", True, False, False),
        ("Z", False, False, True),
    ]


def _item(in_master: bool, in_slave: bool, in_excel: bool = False) -> MergedObject:
    return MergedObject(owner="APP", name="X", type="TABLE", in_master=in_master, in_slave=in_slave, in_excel=in_excel)


@pytest.mark.parametrize(
    ("in_master", "in_slave", "identical", "conclusion", "kind"),
    [
        (True, True, True, merge.MATCH, "success"),
        (True, True, False, merge.CONTENT_MISMATCH, "warning"),
        (True, True, None, merge.CONTENT_MISMATCH, "warning"),
        (True, False, None, merge.MISSING_IN_SLAVE, "error"),
        (False, True, None, merge.MISSING_IN_MASTER, "info"),
    ],
)
def test_two_way_conclusions(in_master, in_slave, identical, conclusion, kind) -> None:
    item = conclude(_item(in_master, in_slave), "two_way", identical)
    assert (item.conclusion, item.conclusion_type) == (conclusion, kind)


@pytest.mark.parametrize(
    ("in_master", "in_slave", "in_excel", "identical", "conclusion", "kind"),
    [
        (True, True, True, True, merge.ALREADY_SYNCED, "success"),
        (True, True, False, True, merge.IDENTICAL_UNLISTED, "success"),
        (True, True, True, False, merge.REGISTERED_CHANGE, "info"),
        (True, True, False, False, merge.UNREGISTERED_CHANGE, "warning"),
        (True, False, True, None, merge.SOURCE_MISSING_IN_MASTER, "error"),
        (True, False, False, None, merge.NOT_YET_PROMOTED, "warning"),
        (False, True, True, None, merge.NEW_OBJECT, "info"),
        (False, True, False, None, merge.UNREGISTERED_IN_SLAVE, "warning"),
        (False, False, True, None, merge.SOURCE_MISSING_LISTED_ONLY, "error"),
    ],
)
def test_three_way_conclusions(in_master, in_slave, in_excel, identical, conclusion, kind) -> None:
    item = conclude(_item(in_master, in_slave, in_excel), "three_way", identical)
    assert (item.conclusion, item.conclusion_type) == (conclusion, kind)


def test_tally_counts() -> None:
    summary = new_summary("two_way")
    assert "excelRows" not in summary["debug"]

    for args in [(True, True, True), (True, True, False), (True, False, None), (False, True, None)]:
        tally(summary, conclude(_item(args[0], args[1]), "two_way", args[2]))

    assert summary["processed"] == 4
    assert summary["diffs"] == 3
    assert summary["missing"] == 1
    assert summary["new"] == 1


def test_three_way_tally_counts_missing_and_new() -> None:
    summary = new_summary("three_way")
    assert summary["debug"]["excelRows"] == 0

    for flags in [(True, False, True), (False, False, True), (False, True, True), (True, True, True)]:
        tally(summary, conclude(_item(*flags), "three_way", True if flags[:2] == (True, True) else None))

    assert summary["processed"] == 4
    assert summary["diffs"] == 3
    # Both "Source missing" conclusions are errors.
    assert summary["missing"] == 2
    assert summary["new"] == 1
