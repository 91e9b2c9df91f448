"""
opsdeck.jobs.results

Comparison result CSV writer.

Responsibilities:
- Write the header once, then one row per merged object, flushing as it goes so a
  partially finished job still leaves a readable file.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import TextIO

from opsdeck.oracle.merge import MergedObject

BASE_COLUMNS = ["OWNER", "OBJECT_NAME", "OBJECT_TYPE", "IN_MASTER", "IN_SLAVE"]
TAIL_COLUMNS = ["MASTER_STATUS", "SLAVE_STATUS", "CONCLUSION", "CONCLUSION_TYPE"]


def _flag(value: bool) -> str:
    return "YES" if value else "NO"


def header(*, with_object_list: bool) -> list[str]:
    middle = ["IN_EXCEL"] if with_object_list else []
    return [*BASE_COLUMNS, *middle, *TAIL_COLUMNS]


def row(item: MergedObject, *, with_object_list: bool) -> list[str]:
    middle = [_flag(item.in_excel)] if with_object_list else []
    return [
        item.owner,
        item.name,
        item.type,
        _flag(item.in_master),
        _flag(item.in_slave),
        *middle,
        item.master_status or "-",
        item.slave_status or "-",
        item.conclusion,
        item.conclusion_type,
    ]


class ResultCsvWriter:
    def __init__(self, path: Path, *, with_object_list: bool) -> None:
        self.path = path
        self._with_object_list = with_object_list
        self._fh: TextIO | None = None

    def open(self) -> TextIO:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Appending keeps rows written by earlier tasks of the same job.
        fresh = not self.path.exists() or self.path.stat().st_size == 0
        self._fh = self.path.open("a", encoding="utf-8", newline="")
        if fresh:
            csv.writer(self._fh, lineterminator="\n").writerow(
                header(with_object_list=self._with_object_list)
            )
        return self._fh

    def write(self, items: list[MergedObject]) -> None:
        fh = self._fh or self.open()
        writer = csv.writer(fh, lineterminator="\n")
        for item in items:
            writer.writerow(row(item, with_object_list=self._with_object_list))
        fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
