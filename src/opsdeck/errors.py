"""
opsdeck.errors

Domain exception hierarchy.

Responsibilities:
- Carry an HTTP status and a user-facing message from any layer.
- Let the API layer render every failure as `{"error": ..., "details": ...}`.
"""

from __future__ import annotations

from typing import Any


class OpsDeckError(Exception):
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: Any | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class InvalidRequest(OpsDeckError):
    status_code = 400


class NotAuthenticated(OpsDeckError):
    status_code = 401


class NotFound(OpsDeckError):
    status_code = 404


class UpstreamError(OpsDeckError):
    # Oracle / oc / S3 / Git host failures.
    status_code = 502


# --- Module Notes -----------------------------------------------------------
# Handlers for these live in `opsdeck.api.errors`.
