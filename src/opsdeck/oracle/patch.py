"""
opsdeck.oracle.patch

Patch script generation (slave -> master).

Responsibilities:
- Render column types as they would appear in an ALTER TABLE.
- Classify column differences into safe, manual-review and destructive changes.
- Choose the patch shape for an object from which DDLs are present.

The slave environment is the source of the change; master is the target being patched.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

UNABLE_TO_ANALYZE = "-- Unable to analyze table structure for smart altering."
STRUCTURE_IDENTICAL = (
    "-- Structure appears identical (or changes handled by indexes/constraints). "
    "Check constraints manually."
)


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    data_type: str
    data_length: int | None = None
    data_precision: int | None = None
    data_scale: int | None = None
    nullable: str = "Y"

    @classmethod
    def from_row(cls, row: dict) -> ColumnInfo:
        # Rows from `all_tab_columns` with upper-case keys.
        return cls(
            name=row["COLUMN_NAME"],
            data_type=row["DATA_TYPE"],
            data_length=row.get("DATA_LENGTH"),
            data_precision=row.get("DATA_PRECISION"),
            data_scale=row.get("DATA_SCALE"),
            nullable=row.get("NULLABLE") or "Y",
        )


def render_column_type(col: ColumnInfo) -> str:
    rendered = col.data_type
    if "CHAR" in rendered:
        rendered += f"({col.data_length})"
    elif rendered == "NUMBER" and col.data_precision:
        scale = f",{col.data_scale}" if col.data_scale else ""
        rendered += f"({col.data_precision}{scale})"
    return rendered


def _column_clause(col: ColumnInfo) -> str:
    not_null = "NOT NULL" if col.nullable == "N" else ""
    return f"{col.name} {render_column_type(col)} {not_null}".rstrip()


def _classify(master: ColumnInfo, slave: ColumnInfo) -> tuple[bool, bool]:
    """Return `(changed, risky)` for a column present on both sides."""

    changed = False
    risky = False
    m_len = master.data_length or 0
    s_len = slave.data_length or 0

    if master.data_type != slave.data_type:
        changed = risky = True
    elif m_len < s_len:
        changed = True
    elif m_len > s_len:
        changed = risky = True

    if master.nullable != slave.nullable:
        changed = True
        if slave.nullable == "N" and master.nullable == "Y":
            risky = True
    return changed, risky


def build_table_alter(
    owner: str,
    name: str,
    master_cols: Iterable[ColumnInfo],
    slave_cols: Iterable[ColumnInfo],
) -> str:
    master_list = list(master_cols)
    slave_list = list(slave_cols)
    if not master_list or not slave_list:
        return UNABLE_TO_ANALYZE

    master_by_name = {c.name: c for c in master_list}
    slave_by_name = {c.name: c for c in slave_list}
    target = f'"{owner}"."{name}"'
    out: list[str] = []

    added = [_column_clause(c) for c in slave_list if c.name not in master_by_name]
    if added:
        out.append("-- [SAFE] Adding New Columns")
        out.append(f"ALTER TABLE {target} ADD ({', '.join(added)});")

    modified: list[str] = []
    warnings: list[str] = []
    for sc in slave_list:
        mc = master_by_name.get(sc.name)
        if mc is None:
            continue
        changed, risky = _classify(mc, sc)
        if not changed:
            continue
        if risky:
            warnings.append(
                f"-- [WARN] Column {sc.name} change ({mc.data_type}({mc.data_length}) -> "
                f"{sc.data_type}({sc.data_length})) might cause data loss!"
            )
        else:
            modified.append(_column_clause(sc))

    if warnings:
        out.append("\n-- MANUAL REVIEW REQUIRED FOR MODIFICATIONS:")
        out.append("\n".join(warnings))
    if modified:
        out.append("\n-- [SAFE] Modifying Columns")
        out.append(f"ALTER TABLE {target} MODIFY ({', '.join(modified)});")

    dropped = [c.name for c in master_list if c.name not in slave_by_name]
    if dropped:
        out.append("\n-- [DANGER] DESTRUCTIVE CHANGES DETECTED")
        for col in dropped:
            out.append(
                f'-- ALTER TABLE {target} DROP COLUMN "{col}"; -- COMMENTED OUT FOR SAFETY'
            )

    if not out:
        return STRUCTURE_IDENTICAL
    return "\n".join(out)


def build_patch_script(
    *,
    owner: str,
    name: str,
    object_type: str,
    has_slave: bool,
    master_ddl: str | None,
    slave_ddl: str | None,
    table_alter: str | None = None,
) -> str:
    if not has_slave:
        return "-- Cannot generate patch: No Slave (Source) connection."
    if not slave_ddl:
        return (
            f"-- Object {name} not found in Slave. Drop in Master?\n"
            f'DROP {object_type} "{owner}"."{name}";'
        )
    if not master_ddl:
        return f"-- New Object Patch (Create in Master)\n{slave_ddl}"
    if object_type == "TABLE" and table_alter is not None:
        return table_alter
    return f"-- CREATE OR REPLACE Logic for {object_type}\n{slave_ddl}"
