"""
opsdeck.api.app

FastAPI app factory for the opsdeck control-plane service.

Responsibilities:
- Build the FastAPI application and register routers/middleware/error handlers.
- Initialize and dispose shared infrastructure (DB engine, HTTP client, job runner).
- Provide a single composition root where cross-cutting concerns live.
"""

from __future__ import annotations

import httpx
from fastapi import FastAPI

from opsdeck import __version__
from opsdeck.api.errors import register_exception_handlers
from opsdeck.api.routers.connections import router as connections_router
from opsdeck.api.routers.git import router as git_router
from opsdeck.api.routers.health import router as health_router
from opsdeck.api.routers.openshift import router as openshift_router
from opsdeck.api.routers.oracle import router as oracle_router
from opsdeck.api.routers.s3 import router as s3_router
from opsdeck.clients.openshift import subprocess_runner
from opsdeck.clients.s3 import boto3_client_factory
from opsdeck.db.init_db import init_db
from opsdeck.db.repositories.jobs import JobRepo
from opsdeck.db.session import create_engine, create_sessionmaker
from opsdeck.jobs.runner import JobRunner
from opsdeck.observability.logging import configure_logging, get_logger
from opsdeck.observability.middleware import RequestContextMiddleware
from opsdeck.security.crypto import ProfileCipher, build_cipher
from opsdeck.settings import Settings

log = get_logger(__name__)


def create_app(*, settings: Settings) -> FastAPI:
    # Configure structured logging once at process startup (before app serves requests).
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    app = FastAPI(
        title="opsdeck",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.cipher = ProfileCipher(build_cipher(settings))
    app.state.oc_runner = subprocess_runner(
        settings.oc_binary,
        timeout=settings.oc_timeout_seconds,
        max_output=settings.oc_read_max_bytes,
    )
    app.state.s3_factory = boto3_client_factory(settings)
    app.state.job_runner = JobRunner()

    register_exception_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(connections_router)
    app.include_router(oracle_router)
    app.include_router(openshift_router)
    app.include_router(s3_router)
    app.include_router(git_router)

    @app.on_event("startup")
    async def _startup() -> None:
        log.info("startup", env=settings.env)
        # Create the async DB engine and session factory once and stash them on app.state.
        # Routers obtain sessions via dependencies (see `opsdeck.api.deps`).
        engine = create_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod should use Alembic migrations.
            await init_db(engine)

        settings.jobs_dir.mkdir(parents=True, exist_ok=True)
        async with app.state.sessionmaker() as session:
            orphaned = await JobRepo(session).fail_unfinished("Interrupted by a service restart")
            await session.commit()
        if orphaned:
            log.warning("orphaned_jobs_failed", count=orphaned)

        app.state.git_http = httpx.AsyncClient(
            verify=settings.git_verify_tls, timeout=settings.git_timeout_seconds
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.job_runner.shutdown()
        git_http = getattr(app.state, "git_http", None)
        if git_http is not None:
            await git_http.aclose()
        # Dispose the engine to close pools/FDs gracefully.
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()
        log.info("shutdown")

    return app


# --- Module Notes -----------------------------------------------------------
# This file stays small: app composition lives here; business logic stays in
# routers/services/jobs layers.
