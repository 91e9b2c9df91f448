"""
opsdeck.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and DB sessions.
- Encapsulate app.state access patterns (engine/sessionmaker, clients, job runner).
- Offer one seam per external system so tests can swap in fakes via `dependency_overrides`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsdeck.clients.git_host import GitHostClient
from opsdeck.clients.openshift import OcClient, OcRunner
from opsdeck.clients.oracle import OracleClientFactory, driver_client_factory
from opsdeck.clients.s3 import S3ClientFactory
from opsdeck.jobs.runner import JobRunner
from opsdeck.security.crypto import ProfileCipher
from opsdeck.settings import Settings


def settings_dep(request: Request) -> Settings:
    # The app factory receives explicit settings; routes see the same instance.
    return request.app.state.settings  # type: ignore[attr-defined]


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created on app startup in `opsdeck.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Commit/rollback is managed explicitly by the service layer.
    async with session_factory() as session:
        yield session


def job_runner_dep(request: Request) -> JobRunner:
    return request.app.state.job_runner  # type: ignore[attr-defined]


def cipher_dep(request: Request) -> ProfileCipher:
    return request.app.state.cipher  # type: ignore[attr-defined]


def oracle_factory_dep() -> OracleClientFactory:
    return driver_client_factory


def oc_runner_dep(request: Request) -> OcRunner:
    return request.app.state.oc_runner  # type: ignore[attr-defined]


def oc_client_dep(
    runner: OcRunner = Depends(oc_runner_dep),
    settings: Settings = Depends(settings_dep),
) -> OcClient:
    return OcClient(runner, settings=settings)


def s3_factory_dep(request: Request) -> S3ClientFactory:
    return request.app.state.s3_factory  # type: ignore[attr-defined]


def git_http_dep(request: Request) -> httpx.AsyncClient:
    return request.app.state.git_http  # type: ignore[attr-defined]


def git_client_dep(
    http: httpx.AsyncClient = Depends(git_http_dep),
    settings: Settings = Depends(settings_dep),
) -> GitHostClient:
    return GitHostClient(http=http, page_limit=settings.git_page_limit)


# --- Module Notes -----------------------------------------------------------
# Background jobs receive the Oracle factory resolved here, so an override applies to
# both the request and the job it spawns.
