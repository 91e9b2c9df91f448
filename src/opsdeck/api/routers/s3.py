"""
opsdeck.api.routers.s3

S3-compatible object browser endpoints (`/api/s3/*`).

Every request carries the connection profile; nothing is cached server-side.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import Field

from opsdeck.api.deps import s3_factory_dep, settings_dep
from opsdeck.clients.s3 import S3ClientFactory, S3ConnectionProfile, S3Service
from opsdeck.errors import InvalidRequest
from opsdeck.settings import Settings

router = APIRouter(prefix="/api/s3", tags=["s3"])


class S3Request(S3ConnectionProfile):
    bucket_name: str = Field(default="", alias="bucketName")
    prefix: str = ""
    key: str = ""


def _service_for(body: S3Request, factory: S3ClientFactory, settings: Settings) -> S3Service:
    if not body.access_key_id or not body.secret_access_key:
        raise InvalidRequest("Missing credentials")
    return S3Service(factory(body), presign_ttl=settings.s3_presign_ttl_seconds)


def _require_bucket(body: S3Request, *, key: bool = False) -> None:
    if not body.bucket_name:
        raise InvalidRequest("Missing bucket name")
    if key and not body.key:
        raise InvalidRequest("Missing object key")


@router.post("/buckets")
async def buckets(
    body: S3Request,
    factory: S3ClientFactory = Depends(s3_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    svc = _service_for(body, factory, settings)
    return {"buckets": await svc.list_buckets()}


@router.post("/files")
async def files(
    body: S3Request,
    factory: S3ClientFactory = Depends(s3_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    svc = _service_for(body, factory, settings)
    _require_bucket(body)
    return {"files": await svc.list_files(body.bucket_name, body.prefix)}


@router.post("/url")
async def presigned_url(
    body: S3Request,
    factory: S3ClientFactory = Depends(s3_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    svc = _service_for(body, factory, settings)
    _require_bucket(body, key=True)
    return {"url": await svc.presigned_url(body.bucket_name, body.key)}


@router.post("/usage")
async def usage(
    body: S3Request,
    factory: S3ClientFactory = Depends(s3_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> dict[str, Any]:
    svc = _service_for(body, factory, settings)
    _require_bucket(body)
    return await svc.usage(body.bucket_name)


@router.post("/content")
async def content(
    body: S3Request,
    factory: S3ClientFactory = Depends(s3_factory_dep),
    settings: Settings = Depends(settings_dep),
) -> Response:
    svc = _service_for(body, factory, settings)
    _require_bucket(body, key=True)
    data = await svc.get_object_bytes(body.bucket_name, body.key)
    return Response(content=data, media_type="application/octet-stream")
