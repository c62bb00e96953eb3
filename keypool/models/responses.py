"""Generic API response envelope model.

JSON responses are wrapped in this envelope for consistency:
{ success: bool, data: T | None, error: str | None, meta: dict | None }
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope for API responses."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None


def ok(data: Any = None, meta: dict | None = None) -> dict:
    """Successful envelope as a plain dict, ready to return from a route."""
    return ApiResponse(success=True, data=data, meta=meta).model_dump()
