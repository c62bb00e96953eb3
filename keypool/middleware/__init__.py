"""Middleware package — error hierarchy, auth, and request ID."""

from keypool.middleware.auth import BearerAuthMiddleware
from keypool.middleware.error_handler import (
    AuthenticationError,
    DuplicateKeyError,
    KeyNotFoundError,
    KeyPoolError,
    NoActiveKeysError,
    ProbeError,
    UpstreamError,
    ValidationError,
    register_error_handlers,
)
from keypool.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AuthenticationError",
    "BearerAuthMiddleware",
    "DuplicateKeyError",
    "KeyNotFoundError",
    "KeyPoolError",
    "NoActiveKeysError",
    "ProbeError",
    "RequestIdMiddleware",
    "UpstreamError",
    "ValidationError",
    "register_error_handlers",
]
