"""
opsdeck.clients.git_host

Git hosting API client (Gitea and GitHub).

Responsibilities:
- Forward authenticated GET requests (the `/api/gitea/repos` proxy).
- Build the repository overview: profile, paginated repos as UnifiedRepo, Gitea heatmap.
- Derive account stats (active this year, contributions, language breakdown).
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from opsdeck.errors import UpstreamError
from opsdeck.observability.logging import get_logger

log = get_logger(__name__)

Source = Literal["github", "gitea"]

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


class GitConnection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str = ""
    base_url: str = Field(default="", alias="baseUrl")
    token: str = Field(default="", repr=False)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_unified_repo(item: dict[str, Any], source: Source) -> dict[str, Any]:
    owner = item.get("owner") or {}
    stars = item.get("stargazers_count")
    if stars is None:
        stars = item.get("stars_count") or 0
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "full_name": item.get("full_name"),
        "description": item.get("description") or "",
        "private": bool(item.get("private")),
        "html_url": item.get("html_url"),
        "owner": {
            "login": owner.get("login") or "Unknown",
            "avatar_url": owner.get("avatar_url") or "",
        },
        "stars": stars,
        "forks": item.get("forks_count") or 0,
        "updated_at": item.get("updated_at"),
        "language": item.get("language") or "Unknown",
        "source": source,
    }


def account_stats(
    repos: list[dict[str, Any]], heatmap: list[dict[str, Any]], *, now: datetime | None = None
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    year_start = datetime(now.year, 1, 1, tzinfo=timezone.utc).timestamp()
    languages = Counter(r.get("language") or "Unknown" for r in repos)
    return {
        "totalRepos": len(repos),
        "activeThisYear": sum(1 for r in repos if _parse_time(r.get("updated_at")).year == now.year),
        "contributionsThisYear": sum(
            int(d.get("contributions") or 0)
            for d in heatmap
            if (d.get("timestamp") or 0) >= year_start
        ),
        "languages": [
            {"name": name, "value": count}
            for name, count in sorted(languages.items(), key=lambda kv: -kv[1])[:8]
        ],
    }


class GitHostClient:
    def __init__(self, *, http: httpx.AsyncClient, page_limit: int = 50) -> None:
        self._http = http
        self._page_limit = page_limit

    async def proxy_get(self, url: str, authorization: str) -> httpx.Response:
        log.info("git_proxy", url=url)
        return await self._http.get(url, headers={"Authorization": authorization, **_JSON_HEADERS})

    async def _get_json(self, url: str, token: str) -> Any:
        try:
            r = await self.proxy_get(url, f"token {token}")
        except httpx.HTTPError as e:
            raise UpstreamError("Git host request failed", details=str(e)) from e
        if r.status_code >= 400:
            raise UpstreamError(
                f"Git host returned {r.status_code}: {r.reason_phrase}",
                details=r.text,
                status_code=r.status_code,
            )
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamError("Git host returned invalid JSON", details=r.text[:500], status_code=502) from e

    async def overview(self, base_url: str, token: str, *, now: datetime | None = None) -> dict[str, Any]:
        base = base_url[:-1] if base_url.endswith("/") else base_url
        source: Source = "github" if "api.github.com" in base else "gitea"

        user_url = f"{base}/user" if source == "github" else f"{base}/api/v1/user"
        try:
            profile = await self._get_json(user_url, token)
        except UpstreamError as e:
            raise UpstreamError("Failed to fetch user profile", details=e.details, status_code=502) from e

        raw: list[dict[str, Any]] = []
        page = 1
        while True:
            if source == "github":
                url = f"{base}/user/repos?per_page={self._page_limit}&page={page}"
            else:
                url = f"{base}/api/v1/user/repos?limit={self._page_limit}&page={page}"
            try:
                data = await self._get_json(url, token)
            except UpstreamError:
                if page == 1:
                    raise
                log.warning("git_pagination_stopped", page=page)
                break
            if not isinstance(data, list) or not data:
                break
            raw.extend(data)
            if len(data) < self._page_limit:
                break
            page += 1

        repos = [to_unified_repo(item, source) for item in raw]
        repos.sort(key=lambda r: _parse_time(r["updated_at"]), reverse=True)

        heatmap: list[dict[str, Any]] = []
        login = profile.get("login") if isinstance(profile, dict) else None
        if source == "gitea" and login:
            try:
                data = await self._get_json(f"{base}/api/v1/users/{login}/heatmap", token)
                heatmap = data if isinstance(data, list) else []
            except UpstreamError as e:
                log.warning("git_heatmap_failed", error=str(e))

        return {
            "profile": profile,
            "repos": repos,
            "heatmap": heatmap,
            "stats": account_stats(repos, heatmap, now=now),
        }
