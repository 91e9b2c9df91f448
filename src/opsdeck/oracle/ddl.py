"""
opsdeck.oracle.ddl

DDL normalisation used before comparing two environments.

Responsibilities:
- Mask system-generated names (`SYS_C...`, `SYS_LOB...$$`, `SYS_IL...$$`).
- Drop supplemental logging clauses (GoldenGate).
- Make CREATE TABLE comparisons independent of column/constraint order.
"""

from __future__ import annotations

import re

SEQUENCE_PLACEHOLDER = "SEQUENCE_PROPERTIES_IGNORED"

_SYS_C = re.compile(r'"?SYS_C\w+"?', re.ASCII)
_SYS_LOB = re.compile(r'"?SYS_LOB\w*?\$\$"?')
_SYS_IL = re.compile(r'"?SYS_IL\w*?\$\$"?')

# Up to two levels of nested parentheses inside the column list.
_SUPPLEMENTAL_GROUP = re.compile(
    r',\s*SUPPLEMENTAL LOG GROUP\s+"[^"]+"\s*\((?:[^)(]+|\((?:[^)(]+|\([^)(]*\))*\))*\)\s*ALWAYS',
    re.IGNORECASE,
)
_SUPPLEMENTAL_GROUP_LOOSE = re.compile(r",\s*SUPPLEMENTAL LOG GROUP.*?\)\s*ALWAYS", re.IGNORECASE)
_SUPPLEMENTAL_DATA = re.compile(r",\s*SUPPLEMENTAL LOG DATA\s*\(.*?\)\s*COLUMNS", re.IGNORECASE)
_SUPPLEMENTAL_DATA_LEADING = re.compile(
    r"SUPPLEMENTAL LOG DATA\s*\(.*?\)\s*COLUMNS,?\s*", re.IGNORECASE
)
_WHITESPACE = re.compile(r"\s+")


def sort_table_content(ddl: str) -> str:
    """
    Sort the top-level comma-separated entries of the first parenthesised block.

    `CREATE TABLE T (B NUMBER, A VARCHAR2(10))` and `CREATE TABLE T (A VARCHAR2(10), B NUMBER)`
    normalise to the same text. Input without a balanced block is returned unchanged.
    """

    first = ddl.find("(")
    if first == -1:
        return ddl

    depth = 0
    last = -1
    for i in range(first, len(ddl)):
        if ddl[i] == "(":
            depth += 1
        elif ddl[i] == ")":
            depth -= 1
        if depth == 0:
            last = i
            break
    if last == -1:
        return ddl

    body = ddl[first + 1 : last]
    parts: list[str] = []
    current: list[str] = []
    nested = 0
    for ch in body:
        if ch == "(":
            nested += 1
        elif ch == ")":
            nested -= 1
        if ch == "," and nested == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)

    parts.sort()
    return ddl[: first + 1] + ", ".join(parts) + ddl[last:]


def normalize_ddl(ddl: str | None, object_type: str) -> str:
    if not ddl:
        return ""

    clean = _SYS_C.sub("SYS_C_IGNORED", ddl)
    clean = _SYS_LOB.sub("SYS_LOB_IGNORED", clean)
    clean = _SYS_IL.sub("SYS_IL_IGNORED", clean)

    clean = _SUPPLEMENTAL_GROUP.sub("", clean)
    clean = _SUPPLEMENTAL_GROUP_LOOSE.sub("", clean)
    clean = _SUPPLEMENTAL_DATA.sub("", clean)
    clean = _SUPPLEMENTAL_DATA_LEADING.sub("", clean)

    clean = collapse_whitespace(clean)

    if object_type == "SEQUENCE":
        return SEQUENCE_PLACEHOLDER
    if object_type == "TABLE":
        clean = sort_table_content(clean)
    return clean


def collapse_whitespace(ddl: str | None) -> str:
    if not ddl:
        return ""
    return _WHITESPACE.sub(" ", ddl).strip()


def metadata_type(object_type: str) -> str:
    """Map a dictionary object type to the name `DBMS_METADATA.GET_DDL` expects."""

    upper = object_type.strip().upper()
    if upper == "PACKAGE BODY":
        return "PACKAGE_BODY"
    if upper == "TYPE BODY":
        return "TYPE_BODY"
    return _WHITESPACE.sub("_", upper)
