"""
tests.fakes

In-memory stand-ins for external systems (Oracle, `oc`, boto3).

Responsibilities:
- Answer the same calls the real clients make, from plain Python data.
- Keep tests hermetic (no database, cluster or object store).
"""

from __future__ import annotations

import asyncio
import io
import json
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from opsdeck.clients.oracle import OBJECT_NOT_FOUND, SCHEMA_OBJECT_TYPES, OracleError
from opsdeck.errors import UpstreamError
from opsdeck.oracle.merge import ObjectMeta
from opsdeck.oracle.models import OracleConnection
from opsdeck.oracle.patch import ColumnInfo

# --- Oracle -----------------------------------------------------------------


@dataclass
class FakeDatabase:
    """One schema environment: objects with their DDL, plus optional table data."""

    objects: list[ObjectMeta] = field(default_factory=list)
    ddl: dict[tuple[str, str, str], str] = field(default_factory=dict)
    columns: dict[tuple[str, str], list[ColumnInfo]] = field(default_factory=dict)
    rows: list[dict[str, Any]] = field(default_factory=list)
    fail_connect: str | None = None
    fail_ddl: set[tuple[str, str, str]] = field(default_factory=set)
    # Raised as-is from `get_ddl`, for errors that are not ORA errors.
    ddl_errors: dict[tuple[str, str, str], Exception] = field(default_factory=dict)
    executed: list[str] = field(default_factory=list)
    # When set, metadata streams wait on it before yielding anything.
    stream_gate: asyncio.Event | None = None

    def add(self, owner: str, name: str, object_type: str, ddl: str, status: str = "VALID") -> None:
        self.objects.append(ObjectMeta(owner=owner, name=name, type=object_type, status=status))
        self.ddl[(owner, name, object_type)] = ddl


class FakeSession:
    def __init__(self, db: FakeDatabase, username: str) -> None:
        self._db = db
        self._username = username

    async def ping(self) -> None:
        return None

    async def list_user_objects(self) -> list[dict[str, Any]]:
        mine = [o for o in self._db.objects if o.owner.upper() == self._username.upper()]
        return [{"name": o.name, "type": o.type, "status": o.status} for o in mine]

    async def analyze_objects(self, owners: Sequence[str] | None) -> list[dict[str, Any]]:
        wanted = {o.upper() for o in owners} if owners else {self._username.upper()}
        return [
            {
                "owner": o.owner,
                "name": o.name,
                "type": o.type,
                "last_ddl_time": o.last_ddl_time,
                "status": o.status,
            }
            for o in self._db.objects
            if o.owner.upper() in wanted
        ]

    async def list_schemas(self) -> list[str]:
        return sorted({o.owner for o in self._db.objects})

    async def owner_objects(self, owner: str) -> list[dict[str, Any]]:
        mine = [o for o in self._db.objects if o.owner == owner and o.type in SCHEMA_OBJECT_TYPES]
        return [{"name": o.name, "type": o.type} for o in sorted(mine, key=lambda o: o.name)]

    async def user_table_columns(self, table_name: str) -> list[dict[str, Any]]:
        return [
            {"name": c.name, "type": c.data_type, "length": c.data_length, "nullable": c.nullable}
            for c in self._db.columns.get((self._username.upper(), table_name), [])
        ]

    async def set_deep_compare_transforms(self) -> None:
        return None

    async def get_ddl(self, owner: str, name: str, object_type: str) -> str:
        key = (owner, name, object_type)
        if key in self._db.ddl_errors:
            raise self._db.ddl_errors[key]
        if key in self._db.fail_ddl:
            raise OracleError("ORA-04063: package body has errors", code="ORA-04063")
        if key not in self._db.ddl:
            raise OracleError(
                f"{OBJECT_NOT_FOUND}: object {name} of type {object_type} not found",
                code=OBJECT_NOT_FOUND,
            )
        return self._db.ddl[key]

    async def object_grants(self, owner: str, name: str) -> str:
        return f'GRANT SELECT ON "{owner}"."{name}" TO "REPORTING";'

    async def table_columns(self, owner: str, name: str) -> list[ColumnInfo]:
        return list(self._db.columns.get((owner, name), []))

    async def stream_objects(
        self, owners: Sequence[str], excluded_types: Sequence[str]
    ) -> AsyncIterator[ObjectMeta]:
        wanted = set(owners)
        rows = sorted(
            (o for o in self._db.objects if o.owner in wanted and o.type not in excluded_types),
            key=lambda o: o.key,
        )
        if self._db.stream_gate is not None:
            await self._db.stream_gate.wait()
        for row in rows:
            yield row

    async def execute(self, statement: str) -> None:
        if "INVALID" in statement:
            raise OracleError("ORA-00900: invalid SQL statement", code="ORA-00900", offset=7)
        self._db.executed.append(statement)

    async def fetch_rows(self, statement: str, max_rows: int) -> list[dict[str, Any]]:
        return [dict(r) for r in self._db.rows[:max_rows]]


class FakeDdlFetcher:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    async def fetch_ddl(self, owner: str, name: str, object_type: str) -> str | None:
        try:
            return await self._session.get_ddl(owner, name, object_type)
        except OracleError:
            return None


class FakeOracleClient:
    def __init__(self, db: FakeDatabase, conn: OracleConnection) -> None:
        self._db = db
        self._conn = conn

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeSession]:
        if self._db.fail_connect:
            raise OracleError(self._db.fail_connect, code="ORA-12541")
        yield FakeSession(self._db, self._conn.username)

    @asynccontextmanager
    async def ddl_pool(self, *, min_size: int, max_size: int) -> AsyncIterator[FakeDdlFetcher]:
        if self._db.fail_connect:
            raise OracleError(self._db.fail_connect, code="ORA-12541")
        yield FakeDdlFetcher(FakeSession(self._db, self._conn.username))


def oracle_factory(databases: dict[str, FakeDatabase]):
    """Factory keyed by connection id, matching `OracleClientFactory`."""

    def build(conn: OracleConnection) -> FakeOracleClient:
        return FakeOracleClient(databases[conn.id], conn)

    return build


def connection(
    conn_id: str, *, username: str = "APP", name: str | None = None, host: str = "db.local"
) -> dict[str, Any]:
    return {
        "id": conn_id,
        "name": name or conn_id,
        "host": host,
        "port": 1521,
        "serviceName": "ORCL",
        "username": username,
        "password": "secret",
    }


# --- oc ---------------------------------------------------------------------


class FakeOc:
    """
    Scripted `oc` runner: the first registered prefix matching the argument vector wins.

    A value may be bytes, str, a dict (rendered as JSON) or an exception instance to raise.
    """

    def __init__(self) -> None:
        self.responses: list[tuple[tuple[str, ...], Any]] = []
        self.calls: list[tuple[list[str], bytes | None]] = []

    def on(self, *prefix: str, reply: Any) -> FakeOc:
        self.responses.append((prefix, reply))
        return self

    async def __call__(self, args: Sequence[str], stdin: bytes | None = None) -> bytes:
        argv = list(args)
        self.calls.append((argv, stdin))
        for prefix, reply in self.responses:
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(reply, BaseException):
                    raise reply
                if isinstance(reply, dict):
                    return json.dumps(reply).encode()
                if isinstance(reply, str):
                    return reply.encode()
                return reply
        raise UpstreamError(f"unexpected oc call: {' '.join(argv)}", status_code=500)


# --- S3 ---------------------------------------------------------------------


class FakeS3Client:
    def __init__(self, objects: dict[str, dict[str, bytes]], *, page_size: int = 1000) -> None:
        self._objects = objects
        self._page_size = page_size

    def list_buckets(self) -> dict[str, Any]:
        return {"Buckets": [{"Name": name} for name in sorted(self._objects)]}

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        bucket = self._objects[kwargs["Bucket"]]
        prefix = kwargs.get("Prefix", "")
        keys = sorted(k for k in bucket if k.startswith(prefix))

        if kwargs.get("Delimiter") == "/":
            common: list[str] = []
            contents: list[dict[str, Any]] = []
            for key in keys:
                rest = key[len(prefix) :]
                if "/" in rest:
                    folder = prefix + rest.split("/", 1)[0] + "/"
                    if folder not in common:
                        common.append(folder)
                    continue
                # `rest == ""` is the folder placeholder object itself.
                contents.append({"Key": key, "Size": len(bucket[key])})
            return {
                "CommonPrefixes": [{"Prefix": p} for p in common],
                "Contents": contents,
            }

        start = int(kwargs.get("ContinuationToken") or 0)
        page = keys[start : start + self._page_size]
        resp: dict[str, Any] = {"Contents": [{"Key": k, "Size": len(bucket[k])} for k in page]}
        if start + self._page_size < len(keys):
            resp["NextContinuationToken"] = str(start + self._page_size)
        return resp

    def generate_presigned_url(self, ClientMethod: str, Params: dict[str, str], ExpiresIn: int) -> str:
        return f"https://s3.local/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        return {"Body": io.BytesIO(self._objects[Bucket][Key])}
