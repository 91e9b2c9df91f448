"""
opsdeck.oracle.models

Request/response models for the Oracle endpoints.

Field names follow the dashboard's camelCase JSON; Python code uses snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OracleConnection(CamelModel):
    id: str = ""
    name: str = ""
    host: str = ""
    port: int | str = 1521
    service_name: str = ""
    username: str = ""
    password: str | None = Field(default=None, repr=False)
    color: str | None = None

    @property
    def dsn(self) -> str:
        return f"{self.host}:{self.port}/{self.service_name}"

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.port and self.service_name and self.username and self.password)

    def public(self) -> dict[str, Any]:
        # Safe to persist or return: no password.
        return self.model_dump(by_alias=True, exclude={"password"})


class ObjectRef(CamelModel):
    owner: str
    name: str
    type: str


class OwnerMapping(CamelModel):
    master: OracleConnection | None = None
    slave: OracleConnection | None = None


# --- single-shot requests ---------------------------------------------------


class ConnectionRequest(CamelModel):
    connection: OracleConnection


class AnalyzeMetadataRequest(CamelModel):
    connection: OracleConnection
    owners: list[str] | None = None


class GetDdlRequest(CamelModel):
    connection: OracleConnection
    owner: str
    name: str
    type: str


class FetchDdlDiffRequest(CamelModel):
    master: OracleConnection | None = None
    slave: OracleConnection | None = None
    object: ObjectRef | None = None


class ValidateObjectsRequest(CamelModel):
    items: list[ObjectRef]
    env1: OracleConnection
    env2: OracleConnection
    fetch_ddl: bool = Field(default=False, alias="fetchDDL")


class GetColumnsRequest(CamelModel):
    connection: OracleConnection | None = None
    table_name: str = ""


class SchemaRequest(CamelModel):
    connection: OracleConnection | None = None


class OwnerObjectsRequest(CamelModel):
    connection: OracleConnection | None = None
    owner: str = ""


class ExecuteDdlRequest(CamelModel):
    target_env: OracleConnection
    ddl: str


class CompareDataRequest(CamelModel):
    source_conn: OracleConnection
    target_conn: OracleConnection
    table_name: str
    columns: list[str]


class AutoMappingRequest(CamelModel):
    owners: list[str]
    connections: list[OracleConnection]
    env1_keyword: str = ""
    env2_keyword: str = ""


# --- jobs -------------------------------------------------------------------


class TwoWayRequest(CamelModel):
    owner_mappings: dict[str, OwnerMapping] = Field(default_factory=dict)


class ThreeWayRequest(CamelModel):
    excel_data: list[ObjectRef] = Field(default_factory=list)
    owner_mappings: dict[str, OwnerMapping] = Field(default_factory=dict)


class BackupRequest(CamelModel):
    mode: Literal["ALL", "LIST"] = "ALL"
    connections: list[OracleConnection] = Field(default_factory=list)
    items: list[ObjectRef] = Field(default_factory=list)
    owner_mappings: dict[str, OracleConnection | None] = Field(default_factory=dict)
    concurrency: int | None = None


class JobCreated(BaseModel):
    jobId: str
