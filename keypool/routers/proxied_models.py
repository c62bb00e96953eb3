"""Upstream model catalogue, fetched with a pool key.

- GET /proxied-models — upstream ``/models`` body, e.g. ``{"data": [{"id": ...}]}``
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from keypool.logging_config import mask_key

logger = logging.getLogger(__name__)


def create_proxied_models_router(*, store: Any = None, upstream: Any = None) -> APIRouter:
    """Factory that creates the proxied models router."""

    models_router = APIRouter(tags=["models"])

    @models_router.get("/proxied-models")
    async def proxied_models() -> dict:
        key = store.next_active()
        body = await upstream.list_models(key.value)
        logger.info("Proxied models request", extra={"key": mask_key(key.value)})
        return body

    return models_router
