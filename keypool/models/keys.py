"""Request models for key lifecycle endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class KeyValueRequest(BaseModel):
    """Body for add / delete / reactivate."""

    value: str = Field(..., min_length=1)


class DisableKeyRequest(KeyValueRequest):
    """Body for a manual disable; ``reason`` defaults server-side."""

    reason: str | None = None


class BatchKeysRequest(BaseModel):
    """Body for batch add / batch remove."""

    keys: list[str] = Field(..., min_length=1)
