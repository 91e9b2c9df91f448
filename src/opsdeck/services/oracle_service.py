"""
opsdeck.services.oracle_service

Single-shot Oracle operations behind `/api/oracle/*`.

Responsibilities:
- Connection tests, object listings and DDL retrieval.
- DDL diff with patch script generation.
- Batch object validation, DDL execution and table data comparison.
"""

from __future__ import annotations

import asyncio
from typing import Any

from opsdeck.clients.oracle import OracleClientFactory, OracleError, OracleSession
from opsdeck.errors import InvalidRequest, NotFound, UpstreamError
from opsdeck.observability.logging import get_logger
from opsdeck.oracle.data_compare import build_select, compare_rows
from opsdeck.oracle.ddl import collapse_whitespace
from opsdeck.oracle.mapping import auto_map
from opsdeck.oracle.models import (
    AutoMappingRequest,
    CompareDataRequest,
    ExecuteDdlRequest,
    FetchDdlDiffRequest,
    GetColumnsRequest,
    GetDdlRequest,
    ObjectRef,
    OracleConnection,
    OwnerObjectsRequest,
    SchemaRequest,
    ValidateObjectsRequest,
)
from opsdeck.oracle.patch import ColumnInfo, build_patch_script, build_table_alter
from opsdeck.settings import Settings

log = get_logger(__name__)


def _require(conn: OracleConnection) -> None:
    if not conn.is_complete:
        raise InvalidRequest("Missing connection details")


class OracleService:
    def __init__(self, *, oracle: OracleClientFactory, settings: Settings) -> None:
        self._oracle = oracle
        self._settings = settings

    async def test_connection(self, conn: OracleConnection) -> dict[str, Any]:
        _require(conn)
        async with self._oracle(conn).session() as session:
            await session.ping()
        return {"success": True, "message": "Connection successful!"}

    async def list_objects(self, conn: OracleConnection) -> dict[str, Any]:
        _require(conn)
        async with self._oracle(conn).session() as session:
            return {"objects": await session.list_user_objects()}

    async def analyze_objects(self, conn: OracleConnection, owners: list[str] | None) -> dict[str, Any]:
        _require(conn)
        async with self._oracle(conn).session() as session:
            return {"objects": await session.analyze_objects(owners)}

    async def list_schemas(self, body: SchemaRequest) -> dict[str, Any]:
        if body.connection is None:
            raise InvalidRequest("Missing connection details")
        _require(body.connection)
        async with self._oracle(body.connection).session() as session:
            return {"schemas": await session.list_schemas()}

    async def owner_objects(self, body: OwnerObjectsRequest) -> dict[str, Any]:
        if body.connection is None or not body.owner:
            raise InvalidRequest("Missing connection or owner")
        _require(body.connection)
        async with self._oracle(body.connection).session() as session:
            return {"objects": await session.owner_objects(body.owner)}

    async def table_columns(self, body: GetColumnsRequest) -> dict[str, Any]:
        """Columns of one of the connecting user's tables, in column order (data-checker picker)."""

        if body.connection is None or not body.table_name:
            raise InvalidRequest("Missing connection details or table name")
        _require(body.connection)
        async with self._oracle(body.connection).session() as session:
            return {"columns": await session.user_table_columns(body.table_name)}

    async def get_ddl(self, body: GetDdlRequest) -> dict[str, Any]:
        _require(body.connection)
        try:
            async with self._oracle(body.connection).session() as session:
                await session.set_deep_compare_transforms()
                ddl = await session.get_ddl(body.owner, body.name, body.type)
        except OracleError as e:
            if e.not_found:
                raise NotFound("Object not found (ORA-31603)") from e
            raise
        if not ddl:
            raise NotFound("Object not found or DDL empty")
        return {"ddl": ddl}

    async def _side_ddl(
        self, conn: OracleConnection | None, obj: ObjectRef, *, with_grants: bool
    ) -> tuple[str | None, list[ColumnInfo]]:
        if conn is None:
            return None, []
        try:
            async with self._oracle(conn).session() as session:
                await session.set_deep_compare_transforms()
                ddl = await session.get_ddl(obj.owner, obj.name, obj.type)
                columns: list[ColumnInfo] = []
                if obj.type == "TABLE":
                    columns = await session.table_columns(obj.owner, obj.name)
                    if with_grants and ddl:
                        ddl = f"{ddl}\n\n{await session.object_grants(obj.owner, obj.name)}"
                return ddl or None, columns
        except OracleError as e:
            if e.not_found:
                return None, []
            return f"-- Failed to fetch DDL: {e.message}", []

    async def fetch_ddl_diff(self, body: FetchDdlDiffRequest) -> dict[str, Any]:
        obj = body.object
        if obj is None:
            raise InvalidRequest("Missing object details")

        (master_ddl, master_cols), (slave_ddl, slave_cols) = await asyncio.gather(
            self._side_ddl(body.master, obj, with_grants=False),
            self._side_ddl(body.slave, obj, with_grants=True),
        )
        table_alter = None
        if obj.type == "TABLE" and master_ddl and slave_ddl:
            table_alter = build_table_alter(obj.owner, obj.name, master_cols, slave_cols)

        patch = build_patch_script(
            owner=obj.owner,
            name=obj.name,
            object_type=obj.type,
            has_slave=body.slave is not None,
            master_ddl=master_ddl,
            slave_ddl=slave_ddl,
            table_alter=table_alter,
        )
        return {"masterDDL": master_ddl, "slaveDDL": slave_ddl, "patchScript": patch}

    @staticmethod
    async def _ddl_or_none(session: OracleSession, item: ObjectRef) -> tuple[str | None, str | None]:
        try:
            ddl = await session.get_ddl(item.owner, item.name, item.type)
        except OracleError as e:
            return None, None if e.not_found else e.message
        return ddl or None, None

    async def validate_objects(self, body: ValidateObjectsRequest) -> dict[str, Any]:
        _require(body.env1)
        _require(body.env2)
        results: list[dict[str, Any]] = []
        async with (
            self._oracle(body.env1).session() as source,
            self._oracle(body.env2).session() as target,
        ):
            await source.set_deep_compare_transforms()
            await target.set_deep_compare_transforms()
            # Sequential on purpose: one session per side.
            for item in body.items:
                source_ddl, source_err = await self._ddl_or_none(source, item)
                target_ddl, target_err = await self._ddl_or_none(target, item)

                if source_ddl is None and target_ddl is None:
                    status = "MISSING_IN_BOTH"
                elif source_ddl is None:
                    status = "MISSING_IN_SOURCE"
                elif target_ddl is None:
                    status = "MISSING_IN_TARGET"
                elif collapse_whitespace(source_ddl) == collapse_whitespace(target_ddl):
                    status = "MATCH"
                else:
                    status = "DIFF"

                row: dict[str, Any] = {
                    "owner": item.owner,
                    "name": item.name,
                    "type": item.type,
                    "status": status,
                }
                errors = [e for e in (source_err, target_err) if e]
                if errors:
                    row["error"] = "; ".join(errors)
                if body.fetch_ddl:
                    row["sourceDDL"] = source_ddl
                    row["targetDDL"] = target_ddl
                results.append(row)
        return {"results": results}

    async def execute_ddl(self, body: ExecuteDdlRequest) -> dict[str, Any]:
        _require(body.target_env)
        if not body.ddl.strip():
            raise InvalidRequest("DDL is empty")
        try:
            async with self._oracle(body.target_env).session() as session:
                await session.execute(body.ddl)
        except OracleError as e:
            details = f"At offset {e.offset}" if e.offset else None
            raise UpstreamError(e.message, details=details, status_code=500) from e
        log.info("ddl_executed", target=body.target_env.name)
        return {"success": True, "message": "Object compiled successfully."}

    async def compare_data(self, body: CompareDataRequest) -> dict[str, Any]:
        _require(body.source_conn)
        _require(body.target_conn)
        if not body.table_name or not body.columns:
            raise InvalidRequest("Table name and columns are required")

        statement = build_select(body.table_name, body.columns)
        limit = self._settings.compare_data_max_rows

        async def fetch(conn: OracleConnection) -> list[dict[str, Any]]:
            async with self._oracle(conn).session() as session:
                return await session.fetch_rows(statement, limit)

        source_rows, target_rows = await asyncio.gather(fetch(body.source_conn), fetch(body.target_conn))
        return compare_rows(
            source_rows,
            target_rows,
            body.columns,
            max_diffs=self._settings.compare_data_max_diffs,
        )

    @staticmethod
    def auto_mapping(body: AutoMappingRequest) -> dict[str, Any]:
        mapped = auto_map(body.owners, body.connections, body.env1_keyword, body.env2_keyword)
        return {
            "mappings": {
                owner: {
                    side: conn.model_dump(by_alias=True) if conn else None
                    for side, conn in sides.items()
                }
                for owner, sides in mapped.items()
            }
        }


# --- Module Notes -----------------------------------------------------------
# OracleError already carries status 500 and the driver message, so most methods simply
# let it propagate to the API error handler.
