"""
opsdeck.oracle.data_compare

Order-independent row comparison between two copies of a table.

Rows are compared as multisets keyed on the selected columns, so duplicates are
matched one-for-one and any surplus is reported per side.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def build_select(table_name: str, columns: Sequence[str]) -> str:
    cols = ", ".join(quote_identifier(c) for c in columns)
    # OWNER.TABLE is quoted part by part.
    table = ".".join(quote_identifier(part) for part in table_name.split("."))
    return f"SELECT {cols} FROM {table}"


def _row_key(row: dict[str, Any], columns: Sequence[str]) -> str:
    return json.dumps([row.get(c) for c in columns], default=str)


def compare_rows(
    source_rows: Sequence[dict[str, Any]],
    target_rows: Sequence[dict[str, Any]],
    columns: Sequence[str],
    *,
    max_diffs: int = 1000,
) -> dict[str, Any]:
    # key -> [source count, target count, first row seen]
    buckets: dict[str, list[Any]] = {}
    for row in source_rows:
        entry = buckets.setdefault(_row_key(row, columns), [0, 0, row])
        entry[0] += 1
    for row in target_rows:
        entry = buckets.setdefault(_row_key(row, columns), [0, 0, row])
        entry[1] += 1

    match_count = source_only = target_only = 0
    diffs: list[dict[str, Any]] = []
    for s_count, t_count, data in buckets.values():
        common = min(s_count, t_count)
        match_count += common
        s_extra = s_count - common
        t_extra = t_count - common
        if s_extra:
            source_only += s_extra
            if len(diffs) < max_diffs:
                diffs.append({"type": "SOURCE_ONLY", "data": data, "count": s_extra})
        if t_extra:
            target_only += t_extra
            if len(diffs) < max_diffs:
                diffs.append({"type": "TARGET_ONLY", "data": data, "count": t_extra})

    return {
        "status": "MATCH" if source_only == 0 and target_only == 0 else "DIFF",
        "stats": {
            "sourceTotal": len(source_rows),
            "targetTotal": len(target_rows),
            "matchCount": match_count,
            "sourceOnlyCount": source_only,
            "targetOnlyCount": target_only,
        },
        "diffs": diffs,
    }
