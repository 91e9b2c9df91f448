"""
opsdeck.clients.s3

S3-compatible object storage browser (boto3).

Responsibilities:
- Build a path-style client for AWS or S3-compatible endpoints (MinIO, ODF/Noobaa).
- List buckets and one "folder" level of a bucket.
- Presign downloads, compute bucket usage, fetch object bytes.

boto3 is synchronous; every call runs in Starlette's threadpool.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from opsdeck.errors import UpstreamError
from opsdeck.settings import Settings


class S3ConnectionProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str = ""
    endpoint: str | None = None
    region: str | None = None
    access_key_id: str = Field(default="", alias="accessKeyId")
    secret_access_key: str = Field(default="", alias="secretAccessKey", repr=False)


S3ClientFactory = Callable[[S3ConnectionProfile], Any]


def normalize_prefix(prefix: str | None) -> str:
    if not prefix or prefix == "/":
        return ""
    return prefix if prefix.endswith("/") else f"{prefix}/"


def extension_of(key: str) -> str:
    leaf = key.rsplit("/", 1)[-1]
    if "." not in leaf:
        return "unknown"
    return leaf.rsplit(".", 1)[-1].lower() or "unknown"


def boto3_client_factory(settings: Settings) -> S3ClientFactory:
    def build(profile: S3ConnectionProfile) -> Any:
        return boto3.client(
            "s3",
            endpoint_url=profile.endpoint or None,
            region_name=profile.region or settings.s3_default_region,
            aws_access_key_id=profile.access_key_id,
            aws_secret_access_key=profile.secret_access_key,
            verify=settings.s3_verify_tls,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    return build


class S3Service:
    def __init__(self, client: Any, *, presign_ttl: int = 3600) -> None:
        self._client = client
        self._presign_ttl = presign_ttl

    async def _call(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await run_in_threadpool(fn, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError(str(e), status_code=500) from e

    async def list_buckets(self) -> list[dict[str, Any]]:
        resp = await self._call(self._client.list_buckets)
        return list(resp.get("Buckets") or [])

    async def list_files(self, bucket: str, prefix: str | None = "") -> list[dict[str, Any]]:
        clean = normalize_prefix(prefix)
        resp = await self._call(
            self._client.list_objects_v2, Bucket=bucket, Prefix=clean, Delimiter="/"
        )

        items: list[dict[str, Any]] = []
        for common in resp.get("CommonPrefixes") or []:
            key = common.get("Prefix")
            if key:
                items.append(
                    {
                        "name": key[len(clean) :].replace("/", "", 1),
                        "key": key,
                        "size": 0,
                        "isDirectory": True,
                    }
                )
        for obj in resp.get("Contents") or []:
            key = obj.get("Key")
            # The folder placeholder object itself.
            if not key or key == clean:
                continue
            items.append(
                {
                    "name": key[len(clean) :],
                    "key": key,
                    "lastModified": obj.get("LastModified"),
                    "size": obj.get("Size") or 0,
                    "isDirectory": False,
                }
            )
        return items

    async def presigned_url(self, bucket: str, key: str) -> str:
        return await self._call(
            self._client.generate_presigned_url,
            ClientMethod="get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=self._presign_ttl,
        )

    async def usage(self, bucket: str) -> dict[str, Any]:
        total_size = 0
        object_count = 0
        stats: dict[str, dict[str, int]] = {}
        token: str | None = None

        while True:
            kwargs: dict[str, Any] = {"Bucket": bucket}
            if token:
                kwargs["ContinuationToken"] = token
            resp = await self._call(self._client.list_objects_v2, **kwargs)

            for obj in resp.get("Contents") or []:
                size = obj.get("Size") or 0
                total_size += size
                object_count += 1
                key = obj.get("Key") or ""
                if key and not key.endswith("/"):
                    bucket_stats = stats.setdefault(extension_of(key), {"count": 0, "size": 0})
                    bucket_stats["count"] += 1
                    bucket_stats["size"] += size

            token = resp.get("NextContinuationToken")
            if not token:
                break

        return {"totalSize": total_size, "objectCount": object_count, "fileTypeStats": stats}

    async def get_object_bytes(self, bucket: str, key: str) -> bytes:
        resp = await self._call(self._client.get_object, Bucket=bucket, Key=key)
        body = resp.get("Body")
        if body is None:
            raise UpstreamError("Empty body", status_code=500)
        return await run_in_threadpool(body.read)
