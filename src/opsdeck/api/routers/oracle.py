"""
opsdeck.api.routers.oracle

Oracle comparator endpoints (`/api/oracle/*`).

Responsibilities:
- Single-shot operations (connection test, listings, DDL, diff/patch, validation,
  DDL execution, data compare, auto-mapping).
- Start and poll two-way, three-way and backup jobs; download their outputs.
- Generic job status and cancellation.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.concurrency import run_in_threadpool

from opsdeck.api.deps import (
    db_session,
    job_runner_dep,
    oracle_factory_dep,
    sessionmaker_from_app,
    settings_dep,
)
from opsdeck.clients.oracle import OracleClientFactory
from opsdeck.db.models import JobKind
from opsdeck.jobs.runner import JobRunner
from opsdeck.oracle.models import (
    AnalyzeMetadataRequest,
    AutoMappingRequest,
    BackupRequest,
    CompareDataRequest,
    ConnectionRequest,
    ExecuteDdlRequest,
    FetchDdlDiffRequest,
    GetColumnsRequest,
    GetDdlRequest,
    JobCreated,
    OracleConnection,
    OwnerObjectsRequest,
    SchemaRequest,
    ThreeWayRequest,
    TwoWayRequest,
    ValidateObjectsRequest,
)
from opsdeck.services.backup_service import BackupService, build_report, zip_directory
from opsdeck.services.comparison_service import ComparisonService
from opsdeck.services.job_service import JobService
from opsdeck.services.oracle_service import OracleService
from opsdeck.settings import Settings

router = APIRouter(prefix="/api/oracle", tags=["oracle"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _oracle_service(
    oracle: OracleClientFactory = Depends(oracle_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> OracleService:
    return OracleService(oracle=oracle, settings=settings)


def _comparison_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
    settings: Settings = Depends(settings_dep),
    oracle: OracleClientFactory = Depends(oracle_factory_dep),
    runner: JobRunner = Depends(job_runner_dep),
) -> ComparisonService:
    return ComparisonService(sessionmaker=sessionmaker, settings=settings, oracle=oracle, runner=runner)


def _backup_service(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
    settings: Settings = Depends(settings_dep),
    oracle: OracleClientFactory = Depends(oracle_factory_dep),
    runner: JobRunner = Depends(job_runner_dep),
) -> BackupService:
    return BackupService(sessionmaker=sessionmaker, settings=settings, oracle=oracle, runner=runner)


def _job_service(session: AsyncSession = Depends(db_session)) -> JobService:
    return JobService(session=session)


# --- single-shot ------------------------------------------------------------


@router.post("/test-connection")
async def test_connection(
    body: OracleConnection, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.test_connection(body)


@router.post("/list-objects")
async def list_objects(
    body: ConnectionRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.list_objects(body.connection)


@router.post("/analyze-objects-metadata")
async def analyze_objects_metadata(
    body: AnalyzeMetadataRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.analyze_objects(body.connection, body.owners)


@router.post("/get-columns")
async def get_columns(
    body: GetColumnsRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.table_columns(body)


@router.post("/meta/schemas")
async def meta_schemas(body: SchemaRequest, svc: OracleService = Depends(_oracle_service)) -> dict[str, Any]:
    return await svc.list_schemas(body)


@router.post("/meta/objects")
async def meta_objects(
    body: OwnerObjectsRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.owner_objects(body)


@router.post("/get-ddl")
async def get_ddl(body: GetDdlRequest, svc: OracleService = Depends(_oracle_service)) -> dict[str, Any]:
    return await svc.get_ddl(body)


@router.post("/fetch-ddl-diff")
async def fetch_ddl_diff(
    body: FetchDdlDiffRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.fetch_ddl_diff(body)


@router.post("/validate-objects")
async def validate_objects(
    body: ValidateObjectsRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.validate_objects(body)


@router.post("/execute-ddl")
async def execute_ddl(
    body: ExecuteDdlRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.execute_ddl(body)


@router.post("/compare-data")
async def compare_data(
    body: CompareDataRequest, svc: OracleService = Depends(_oracle_service)
) -> dict[str, Any]:
    return await svc.compare_data(body)


@router.post("/auto-mapping")
async def auto_mapping(body: AutoMappingRequest) -> dict[str, Any]:
    return OracleService.auto_mapping(body)


# --- comparison jobs --------------------------------------------------------


async def _job_status_or_download(
    jobs: JobService, job_id: str, kind: JobKind, download: bool
) -> Any:
    if not download:
        return await jobs.status(job_id, kind)
    path = await jobs.completed_output(job_id, kind)
    return FileResponse(path, media_type="text/csv", filename=f"{job_id}.csv")


@router.post("/two-way-stream", response_model=JobCreated)
async def start_two_way(
    body: TwoWayRequest, svc: ComparisonService = Depends(_comparison_service)
) -> JobCreated:
    return JobCreated(jobId=await svc.start_two_way(body))


@router.get("/two-way-stream")
async def two_way_status(
    job_id: str = Query(default="", alias="jobId"),
    download: bool = False,
    jobs: JobService = Depends(_job_service),
) -> Any:
    return await _job_status_or_download(jobs, job_id, JobKind.two_way, download)


@router.post("/three-way-stream", response_model=JobCreated)
async def start_three_way(
    body: ThreeWayRequest, svc: ComparisonService = Depends(_comparison_service)
) -> JobCreated:
    return JobCreated(jobId=await svc.start_three_way(body))


@router.get("/three-way-stream")
async def three_way_status(
    job_id: str = Query(default="", alias="jobId"),
    download: bool = False,
    jobs: JobService = Depends(_job_service),
) -> Any:
    return await _job_status_or_download(jobs, job_id, JobKind.three_way, download)


# --- backup -----------------------------------------------------------------


@router.post("/backup", response_model=JobCreated)
async def start_backup(body: BackupRequest, svc: BackupService = Depends(_backup_service)) -> JobCreated:
    return JobCreated(jobId=await svc.start(body))


@router.get("/backup")
async def backup_status(
    job_id: str = Query(default="", alias="jobId"),
    download: bool = False,
    jobs: JobService = Depends(_job_service),
) -> Any:
    if not download:
        return await jobs.status(job_id, JobKind.backup)
    ddl_dir = await jobs.completed_output(job_id, JobKind.backup)
    content = await run_in_threadpool(zip_directory, ddl_dir)
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="backup_{job_id}.zip"'},
    )


@router.get("/backup/report")
async def backup_report(
    job_id: str = Query(default="", alias="jobId"),
    jobs: JobService = Depends(_job_service),
) -> Response:
    job = await jobs.get(job_id, JobKind.backup)
    items = list((job.state or {}).get("items") or [])
    content = await run_in_threadpool(build_report, items)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="backup_report_{job_id}.xlsx"'},
    )


# --- job management ---------------------------------------------------------


@router.get("/jobs/{job_id}")
async def job_status(job_id: str, jobs: JobService = Depends(_job_service)) -> dict[str, Any]:
    return await jobs.status(job_id)


@router.delete("/jobs/{job_id}")
async def cancel_job(
    job_id: str,
    jobs: JobService = Depends(_job_service),
    runner: JobRunner = Depends(job_runner_dep),
) -> dict[str, Any]:
    return await jobs.cancel(job_id, runner)


# --- Module Notes -----------------------------------------------------------
# Job endpoints return immediately; callers poll the matching GET (see
# `opsdeck.clients.dashboard_api.DashboardApiClient.wait_for_job`).
