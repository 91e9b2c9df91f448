"""
opsdeck.api.routers.git

Git hosting endpoints (`/api/gitea/*`).

Responsibilities:
- Authenticated GET proxy for arbitrary Gitea/GitHub API URLs.
- Repository overview (profile, repos, heatmap, stats).
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse, Response

from opsdeck.api.deps import git_client_dep
from opsdeck.api.errors import error_body
from opsdeck.clients.git_host import GitConnection, GitHostClient
from opsdeck.errors import InvalidRequest, NotAuthenticated, UpstreamError

router = APIRouter(prefix="/api/gitea", tags=["git"])


@router.get("/repos")
async def proxy_repos(
    url: str = "",
    authorization: str | None = Header(default=None),
    client: GitHostClient = Depends(git_client_dep),
) -> Response:
    if not authorization:
        raise NotAuthenticated("Missing Authorization header")
    if not url:
        raise InvalidRequest("Missing url parameter")

    try:
        upstream = await client.proxy_get(url, authorization)
    except httpx.HTTPError as e:
        raise UpstreamError("Git host request failed", details=str(e), status_code=500) from e

    if upstream.status_code >= 400:
        return JSONResponse(
            status_code=upstream.status_code,
            content=error_body(f"Upstream error: {upstream.reason_phrase}", upstream.text),
        )
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )


@router.post("/overview")
async def overview(body: GitConnection, client: GitHostClient = Depends(git_client_dep)) -> dict[str, Any]:
    if not body.base_url or not body.token:
        raise InvalidRequest("Missing baseUrl or token")
    return await client.overview(body.base_url, body.token)
