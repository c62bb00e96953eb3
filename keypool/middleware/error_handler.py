"""Global error hierarchy and FastAPI exception handlers.

All key pool errors extend KeyPoolError. The FastAPI exception handlers catch
these errors (plus Pydantic's RequestValidationError and unhandled exceptions)
and return a consistent JSON envelope: { success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class KeyPoolError(Exception):
    """Base error for all key pool errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(KeyPoolError):
    """Malformed key value, test request, or reactivation settings."""

    status_code = 422
    message = "Validation error"


class AuthenticationError(KeyPoolError):
    """Invalid or missing bearer token."""

    status_code = 401
    message = "Invalid or missing bearer token"


class KeyNotFoundError(KeyPoolError):
    """Key value is not in the pool."""

    status_code = 404
    message = "Key not found"


class DuplicateKeyError(KeyPoolError):
    """Key value is already in the pool."""

    status_code = 409
    message = "Key already exists"


class NoActiveKeysError(KeyPoolError):
    """No active key is available to authorise an upstream call."""

    status_code = 503
    message = "No active keys available"


class UpstreamError(KeyPoolError):
    """Upstream API unreachable or returned an error after retries."""

    status_code = 502
    message = "Upstream service unavailable"


class ProbeError(KeyPoolError):
    """A single key failed its health probe.

    Carried as data in the test result stream, never rendered as a response.
    """

    status_code = 502
    message = "Probe failed"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _keypool_error_handler(_request: Request, exc: KeyPoolError) -> JSONResponse:
    """Handle KeyPoolError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(KeyPoolError, _keypool_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
