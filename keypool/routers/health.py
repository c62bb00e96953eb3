"""Health endpoint.

This endpoint does NOT require bearer authentication.
- GET /health — service status with key pool and scheduler stats
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from keypool.models.responses import ok


def create_health_router(
    *,
    store: Any = None,
    orchestrator: Any = None,
    scheduler: Any = None,
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        return ok(
            {
                "status": "running",
                "keys": store.get_stats() if store else {},
                "health_tests": orchestrator.get_stats() if orchestrator else {},
                "scheduler": scheduler.get_stats() if scheduler else {},
            }
        )

    return health_router
