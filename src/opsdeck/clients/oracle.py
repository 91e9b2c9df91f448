"""
opsdeck.clients.oracle

Async Oracle access (python-oracledb thin mode).

Responsibilities:
- Open short-lived sessions and DDL connection pools from an `OracleConnection`.
- Run the dictionary queries the comparison tools need.
- Translate driver errors into `OracleError` (keeps the ORA code and offset).

Callers depend on the `OracleClientFactory` seam so tests can substitute an in-memory
fake without a database.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol

import oracledb

from opsdeck.errors import UpstreamError
from opsdeck.observability.logging import get_logger
from opsdeck.oracle.ddl import metadata_type
from opsdeck.oracle.merge import ObjectMeta
from opsdeck.oracle.models import OracleConnection
from opsdeck.oracle.patch import ColumnInfo

log = get_logger(__name__)

# CLOB results (DBMS_METADATA.GET_DDL) come back as str.
oracledb.defaults.fetch_lobs = False

USER_OBJECT_TYPES = (
    "PACKAGE",
    "PACKAGE BODY",
    "PROCEDURE",
    "FUNCTION",
    "TRIGGER",
    "VIEW",
    "TYPE",
    "TYPE BODY",
    "TABLE",
)
SCHEMA_OBJECT_TYPES = (*USER_OBJECT_TYPES, "SEQUENCE")
ANALYZE_EXCLUDED_TYPES = (
    "LOB",
    "LOB PARTITION",
    "INDEX",
    "INDEX PARTITION",
    "TABLE PARTITION",
    "SEQUENCE",
)
TWO_WAY_EXCLUDED_TYPES = ("LOB", "LOB PARTITION", "INDEX PARTITION", "TABLE PARTITION")
THREE_WAY_EXCLUDED_TYPES = ANALYZE_EXCLUDED_TYPES

OBJECT_NOT_FOUND = "ORA-31603"

_DEEP_COMPARE_TRANSFORMS = """
BEGIN
    DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'SEGMENT_ATTRIBUTES', false);
    DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'SQLTERMINATOR', true);
    DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'STORAGE', false);
    DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, 'TABLESPACE', false);
END;
"""


class OracleError(UpstreamError):
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, offset: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.offset = offset

    @property
    def not_found(self) -> bool:
        return self.code == OBJECT_NOT_FOUND or OBJECT_NOT_FOUND in self.message

    @classmethod
    def from_driver(cls, exc: oracledb.Error) -> OracleError:
        err = exc.args[0] if exc.args else None
        message = getattr(err, "message", None) or str(exc)
        return cls(
            message,
            code=getattr(err, "full_code", None),
            offset=getattr(err, "offset", None) or None,
        )


def _not_in(column: str, values: Sequence[str], prefix: str) -> tuple[str, dict[str, str]]:
    names = [f"{prefix}{i}" for i in range(len(values))]
    clause = f"{column} NOT IN ({', '.join(':' + n for n in names)})"
    return clause, dict(zip(names, values))


def _in(column: str, values: Sequence[str], prefix: str) -> tuple[str, dict[str, str]]:
    names = [f"{prefix}{i}" for i in range(len(values))]
    clause = f"{column} IN ({', '.join(':' + n for n in names)})"
    return clause, dict(zip(names, values))


def _dict_rows(cursor: Any) -> None:
    columns = [col[0] for col in cursor.description]
    cursor.rowfactory = lambda *args: dict(zip(columns, args))


class OracleSession(Protocol):
    async def ping(self) -> None: ...

    async def list_user_objects(self) -> list[dict[str, Any]]: ...

    async def list_schemas(self) -> list[str]: ...

    async def owner_objects(self, owner: str) -> list[dict[str, Any]]: ...

    async def user_table_columns(self, table_name: str) -> list[dict[str, Any]]: ...

    async def analyze_objects(self, owners: Sequence[str] | None) -> list[dict[str, Any]]: ...

    async def set_deep_compare_transforms(self) -> None: ...

    async def get_ddl(self, owner: str, name: str, object_type: str) -> str: ...

    async def object_grants(self, owner: str, name: str) -> str: ...

    async def table_columns(self, owner: str, name: str) -> list[ColumnInfo]: ...

    def stream_objects(
        self, owners: Sequence[str], excluded_types: Sequence[str]
    ) -> AsyncIterator[ObjectMeta]: ...

    async def execute(self, statement: str) -> None: ...

    async def fetch_rows(self, statement: str, max_rows: int) -> list[dict[str, Any]]: ...


class DdlFetcher(Protocol):
    async def fetch_ddl(self, owner: str, name: str, object_type: str) -> str | None: ...


class OracleClient(Protocol):
    def session(self) -> Any: ...

    def ddl_pool(self, *, min_size: int, max_size: int) -> Any: ...


OracleClientFactory = Callable[[OracleConnection], OracleClient]


class DriverSession:
    def __init__(self, conn: oracledb.AsyncConnection) -> None:
        self._conn = conn

    async def _all(self, statement: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self._conn.cursor() as cursor:
                await cursor.execute(statement, params or {})
                _dict_rows(cursor)
                return await cursor.fetchall()
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e

    async def ping(self) -> None:
        await self._all("SELECT 1 AS OK FROM DUAL")

    async def list_user_objects(self) -> list[dict[str, Any]]:
        clause, params = _in("object_type", USER_OBJECT_TYPES, "t")
        rows = await self._all(
            f"SELECT object_name, object_type, status FROM user_objects "
            f"WHERE {clause} ORDER BY object_type, object_name",
            params,
        )
        return [
            {"name": r["OBJECT_NAME"], "type": r["OBJECT_TYPE"], "status": r["STATUS"]} for r in rows
        ]

    async def analyze_objects(self, owners: Sequence[str] | None) -> list[dict[str, Any]]:
        excluded, params = _not_in("object_type", ANALYZE_EXCLUDED_TYPES, "x")
        if owners:
            owner_clause, owner_params = _in("owner", [o.upper() for o in owners], "o")
            params.update(owner_params)
        else:
            owner_clause = "owner = USER"
        rows = await self._all(
            "SELECT owner, object_name, object_type, last_ddl_time, status FROM all_objects "
            f"WHERE {owner_clause} AND {excluded} AND object_name NOT LIKE 'BIN$%' "
            "ORDER BY owner, object_type, object_name",
            params,
        )
        return [
            {
                "owner": r["OWNER"],
                "name": r["OBJECT_NAME"],
                "type": r["OBJECT_TYPE"],
                "last_ddl_time": r["LAST_DDL_TIME"],
                "status": r["STATUS"],
            }
            for r in rows
        ]

    async def list_schemas(self) -> list[str]:
        rows = await self._all(
            "SELECT DISTINCT owner FROM all_objects WHERE oracle_maintained = 'N' ORDER BY owner"
        )
        return [r["OWNER"] for r in rows]

    async def owner_objects(self, owner: str) -> list[dict[str, Any]]:
        clause, params = _in("object_type", SCHEMA_OBJECT_TYPES, "t")
        params["owner"] = owner
        rows = await self._all(
            f"SELECT object_name, object_type FROM all_objects "
            f"WHERE owner = :owner AND {clause} ORDER BY object_name",
            params,
        )
        return [{"name": r["OBJECT_NAME"], "type": r["OBJECT_TYPE"]} for r in rows]

    async def user_table_columns(self, table_name: str) -> list[dict[str, Any]]:
        rows = await self._all(
            "SELECT column_name, data_type, data_length, nullable FROM user_tab_cols "
            "WHERE table_name = :table_name ORDER BY column_id",
            {"table_name": table_name},
        )
        return [
            {
                "name": r["COLUMN_NAME"],
                "type": r["DATA_TYPE"],
                "length": r["DATA_LENGTH"],
                "nullable": r["NULLABLE"],
            }
            for r in rows
        ]

    async def set_deep_compare_transforms(self) -> None:
        try:
            with self._conn.cursor() as cursor:
                await cursor.execute(_DEEP_COMPARE_TRANSFORMS)
        except oracledb.Error as e:
            # DDL still comes back, only less normalised.
            log.warning("oracle_transform_setup_failed", error=str(e))

    async def get_ddl(self, owner: str, name: str, object_type: str) -> str:
        rows = await self._all(
            "SELECT DBMS_METADATA.GET_DDL(:type, :name, :owner) AS DDL FROM DUAL",
            {"type": metadata_type(object_type), "name": name, "owner": owner},
        )
        return str(rows[0]["DDL"] or "") if rows else ""

    async def object_grants(self, owner: str, name: str) -> str:
        try:
            rows = await self._all(
                "SELECT DBMS_METADATA.GET_DEPENDENT_DDL('OBJECT_GRANT', :name, :owner) AS DDL "
                "FROM DUAL",
                {"name": name, "owner": owner},
            )
        except OracleError:
            return "-- No grants found or access denied"
        if rows and rows[0]["DDL"]:
            return str(rows[0]["DDL"])
        return "-- No specific grants found"

    async def table_columns(self, owner: str, name: str) -> list[ColumnInfo]:
        rows = await self._all(
            "SELECT column_name, data_type, data_length, data_precision, data_scale, nullable "
            "FROM all_tab_columns WHERE owner = :owner AND table_name = :name "
            "ORDER BY column_name",
            {"owner": owner, "name": name},
        )
        return [ColumnInfo.from_row(r) for r in rows]

    async def stream_objects(
        self, owners: Sequence[str], excluded_types: Sequence[str]
    ) -> AsyncIterator[ObjectMeta]:
        owner_clause, params = _in("owner", owners, "o")
        excluded, type_params = _not_in("object_type", excluded_types, "x")
        params.update(type_params)
        statement = (
            "SELECT owner, object_name, object_type, last_ddl_time, status FROM all_objects "
            f"WHERE {owner_clause} AND {excluded} AND object_name NOT LIKE 'BIN$%' "
            "ORDER BY owner, object_name, object_type"
        )
        try:
            with self._conn.cursor() as cursor:
                cursor.arraysize = 500
                await cursor.execute(statement, params)
                async for owner, name, object_type, last_ddl, status in cursor:
                    yield ObjectMeta(
                        owner=owner,
                        name=name,
                        type=object_type,
                        status=status,
                        last_ddl_time=last_ddl,
                    )
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e

    async def execute(self, statement: str) -> None:
        try:
            with self._conn.cursor() as cursor:
                await cursor.execute(statement)
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e

    async def fetch_rows(self, statement: str, max_rows: int) -> list[dict[str, Any]]:
        try:
            with self._conn.cursor() as cursor:
                await cursor.execute(statement)
                _dict_rows(cursor)
                return await cursor.fetchmany(max_rows)
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e


class PooledDdlFetcher:
    def __init__(self, pool: oracledb.AsyncConnectionPool) -> None:
        self._pool = pool

    async def fetch_ddl(self, owner: str, name: str, object_type: str) -> str | None:
        """DDL text, or None when the object or the connection is unavailable."""

        try:
            async with self._pool.acquire() as conn:
                session = DriverSession(conn)
                await session.set_deep_compare_transforms()
                return await session.get_ddl(owner, name, object_type)
        except (oracledb.Error, OracleError):
            return None


class DriverOracleClient:
    def __init__(self, conn: OracleConnection) -> None:
        self._conn = conn

    def _params(self) -> dict[str, Any]:
        return {"user": self._conn.username, "password": self._conn.password, "dsn": self._conn.dsn}

    @asynccontextmanager
    async def session(self) -> AsyncIterator[DriverSession]:
        try:
            conn = await oracledb.connect_async(**self._params())
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e
        try:
            yield DriverSession(conn)
        finally:
            await conn.close()

    @asynccontextmanager
    async def ddl_pool(self, *, min_size: int, max_size: int) -> AsyncIterator[PooledDdlFetcher]:
        try:
            pool = oracledb.create_pool_async(
                **self._params(), min=min_size, max=max(min_size, max_size), increment=1
            )
        except oracledb.Error as e:
            raise OracleError.from_driver(e) from e
        try:
            yield PooledDdlFetcher(pool)
        finally:
            await pool.close(force=True)


def driver_client_factory(conn: OracleConnection) -> OracleClient:
    return DriverOracleClient(conn)


# --- Module Notes -----------------------------------------------------------
# Dictionary identifiers in IN (...) lists are always bound, never interpolated.
