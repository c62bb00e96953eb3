"""Bearer token authentication middleware.

Every admin call must carry ``Authorization: Bearer <admin_token>``. The
streamed health-test endpoint also accepts the token as a ``token`` query
parameter because browser EventSource clients cannot set headers. ``/health``
is public.

Uses ``hmac.compare_digest`` for constant-time comparison.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from keypool.middleware.error_handler import AuthenticationError, _envelope

logger = logging.getLogger(__name__)

_PUBLIC_PATHS: set[str] = {"/health"}

# Paths that may authenticate through the ``token`` query parameter.
_QUERY_TOKEN_PATHS: set[str] = {"/keys/test"}


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces bearer token authentication."""

    def __init__(self, app, admin_token: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._admin_token = admin_token

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in _PUBLIC_PATHS:
            return await call_next(request)

        provided = _bearer_token(request)
        if provided is None and path in _QUERY_TOKEN_PATHS:
            provided = request.query_params.get("token") or None

        source_ip = request.client.host if request.client else "unknown"

        if provided is None:
            logger.warning(
                "Missing bearer token",
                extra={
                    "event": "auth_failure",
                    "reason": "missing_token",
                    "source_ip": source_ip,
                    "path": path,
                },
            )
            return _envelope(
                status_code=AuthenticationError.status_code,
                error=AuthenticationError.message,
            )

        if not hmac.compare_digest(provided.encode(), self._admin_token.encode()):
            logger.warning(
                "Invalid bearer token",
                extra={
                    "event": "auth_failure",
                    "reason": "invalid_token",
                    "source_ip": source_ip,
                    "path": path,
                },
            )
            return _envelope(
                status_code=AuthenticationError.status_code,
                error=AuthenticationError.message,
            )

        return await call_next(request)
