"""
opsdeck.api.errors

Exception handlers.

Responsibilities:
- Render domain errors, HTTP errors and validation errors as `{"error", "details"}`.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from opsdeck.errors import OpsDeckError
from opsdeck.observability.logging import get_logger

log = get_logger(__name__)


def error_body(message: str, details: Any = None) -> dict[str, Any]:
    return {"error": message, "details": jsonable_encoder(details)}


async def _opsdeck_error(request: Request, exc: OpsDeckError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("request_failed", error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content=error_body("Invalid request", exc.errors()))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OpsDeckError, _opsdeck_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
