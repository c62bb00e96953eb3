"""Auto-reactivation settings endpoints.

- GET  /settings — current settings
- POST /settings — validate, persist, and restart the scheduler
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from keypool.config.reactivation import ReactivationConfig
from keypool.models.responses import ok

logger = logging.getLogger(__name__)


class SettingsUpdateRequest(BaseModel):
    """Body of POST /settings. Invalid values are rejected with 422."""

    auto_reactivation: ReactivationConfig


def create_settings_router(
    *, settings_store: Any = None, scheduler: Any = None
) -> APIRouter:
    """Factory that creates the settings router with injected dependencies."""

    settings_router = APIRouter(prefix="/settings", tags=["settings"])

    @settings_router.get("")
    async def get_settings() -> dict:
        config = settings_store.current()
        return ok({"auto_reactivation": config.model_dump(mode="json")})

    @settings_router.post("")
    async def update_settings(body: SettingsUpdateRequest) -> dict:
        config = settings_store.update(body.auto_reactivation)
        await scheduler.reload(config)
        logger.info(
            "Scheduler restarted with new settings",
            extra={"event": "scheduler_reloaded", "mode": config.mode.value},
        )
        return ok(
            {"auto_reactivation": config.model_dump(mode="json")},
            meta={"message": "Settings updated successfully."},
        )

    return settings_router
