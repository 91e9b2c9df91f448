"""
tests.test_ddl

DDL normalisation used by the deep compare.
"""

from __future__ import annotations

import pytest

from opsdeck.oracle.ddl import (
    SEQUENCE_PLACEHOLDER,
    collapse_whitespace,
    metadata_type,
    normalize_ddl,
    sort_table_content,
)


def test_system_generated_names_are_masked() -> None:
    a = 'CREATE UNIQUE INDEX "APP"."SYS_C0012345" ON "APP"."T" ("ID")'
    b = 'CREATE UNIQUE INDEX "APP"."SYS_C0099999" ON "APP"."T" ("ID")'
    assert normalize_ddl(a, "INDEX") == normalize_ddl(b, "INDEX")
    assert "SYS_C_IGNORED" in normalize_ddl(a, "INDEX")


def test_lob_segment_names_are_masked() -> None:
    ddl = 'LOB ("DOC") STORE AS "SYS_LOB0000012345C00002$$" (INDEX "SYS_IL0000012345C00002$$")'
    clean = normalize_ddl(ddl, "INDEX")
    assert "SYS_LOB_IGNORED" in clean
    assert "SYS_IL_IGNORED" in clean
    assert "0000012345" not in clean


def test_tables_differing_only_in_lob_segments_compare_equal() -> None:
    template = (
        'CREATE TABLE "APP"."DOCS" ("ID" NUMBER, "BODY" CLOB) '
        'LOB ("BODY") STORE AS SECUREFILE "SYS_LOB{n}C00002$$" (INDEX "SYS_IL{n}C00002$$" ENABLE STORAGE IN ROW)'
    )
    prod = normalize_ddl(template.format(n="0000012345"), "TABLE")
    dev = normalize_ddl(template.format(n="0000099999"), "TABLE")

    assert prod == dev
    assert '"SYS_LOB' not in prod
    assert '"SYS_IL' not in prod


def test_table_column_order_does_not_matter() -> None:
    a = 'CREATE TABLE "APP"."T" ("B" NUMBER, "A" VARCHAR2(10))'
    b = 'CREATE TABLE "APP"."T"\n  ( "A" VARCHAR2(10),\n    "B" NUMBER )'
    assert normalize_ddl(a, "TABLE") == normalize_ddl(b, "TABLE")
    assert normalize_ddl(a, "TABLE") == 'CREATE TABLE "APP"."T" ("A" VARCHAR2(10), "B" NUMBER)'


def test_column_order_still_matters_for_views() -> None:
    a = 'CREATE VIEW "APP"."V" ("B", "A") AS SELECT 1, 2 FROM DUAL'
    b = 'CREATE VIEW "APP"."V" ("A", "B") AS SELECT 2, 1 FROM DUAL'
    assert normalize_ddl(a, "VIEW") != normalize_ddl(b, "VIEW")


def test_supplemental_log_group_is_dropped() -> None:
    ddl = 'CREATE TABLE T (A NUMBER, SUPPLEMENTAL LOG GROUP "GGS_1" ("A", "B") ALWAYS)'
    assert normalize_ddl(ddl, "TABLE") == "CREATE TABLE T (A NUMBER)"


def test_supplemental_log_data_is_dropped() -> None:
    ddl = "CREATE TABLE T (A NUMBER, SUPPLEMENTAL LOG DATA (ALL) COLUMNS)"
    assert normalize_ddl(ddl, "TABLE") == "CREATE TABLE T (A NUMBER)"


def test_sequences_always_compare_equal() -> None:
    a = 'CREATE SEQUENCE "APP"."S" START WITH 100'
    b = 'CREATE SEQUENCE "APP"."S" START WITH 9000'
    assert normalize_ddl(a, "SEQUENCE") == normalize_ddl(b, "SEQUENCE") == SEQUENCE_PLACEHOLDER


def test_empty_ddl_normalises_to_empty_string() -> None:
    assert normalize_ddl(None, "TABLE") == ""
    assert normalize_ddl("", "VIEW") == ""


def test_sort_table_content_keeps_nested_parentheses_together() -> None:
    ddl = "CREATE TABLE T (B NUMBER(10,2), A CHAR(1))"
    assert sort_table_content(ddl) == "CREATE TABLE T (A CHAR(1), B NUMBER(10,2))"


def test_sort_table_content_leaves_unbalanced_input_alone() -> None:
    assert sort_table_content("CREATE TABLE T (A NUMBER") == "CREATE TABLE T (A NUMBER"
    assert sort_table_content("DROP TABLE T") == "DROP TABLE T"


def test_collapse_whitespace() -> None:
    assert collapse_whitespace("  SELECT\n\t1\n  FROM   DUAL ") == "SELECT 1 FROM DUAL"
    assert collapse_whitespace(None) == ""


@pytest.mark.parametrize(
    ("object_type", "expected"),
    [
        ("PACKAGE BODY", "PACKAGE_BODY"),
        ("type body", "TYPE_BODY"),
        ("MATERIALIZED VIEW", "MATERIALIZED_VIEW"),
        ("TABLE", "TABLE"),
    ],
)
def test_metadata_type(object_type: str, expected: str) -> None:
    assert metadata_type(object_type) == expected
