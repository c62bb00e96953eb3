"""FastAPI application entry point with lifespan management.

Startup: configure logging, build the key pool (seed keys + persisted state),
load reactivation settings, create the upstream client, orchestrator, batch
actions and scheduler, start the scheduler when enabled, mount routers.
Shutdown: stop the scheduler (cancelling any in-flight tick) and close the
upstream client.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from keypool.config.reactivation import ReactivationConfig, SettingsStore
from keypool.config.settings import KeyPoolSettings
from keypool.integration.upstream_client import UpstreamClient
from keypool.logging_config import configure_logging
from keypool.middleware.auth import BearerAuthMiddleware
from keypool.middleware.error_handler import register_error_handlers
from keypool.middleware.request_id import RequestIdMiddleware
from keypool.pool.store import KeyPoolStore
from keypool.routers.health import create_health_router
from keypool.routers.key_tests import create_key_tests_router
from keypool.routers.keys import create_keys_router
from keypool.routers.proxied_models import create_proxied_models_router
from keypool.routers.settings import create_settings_router
from keypool.services.batch_actions import BatchLifecycleActions
from keypool.services.health_test import HealthTestOrchestrator
from keypool.services.reactivation import ReactivationScheduler

logger = logging.getLogger(__name__)


def _build_lifespan(settings: KeyPoolSettings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown logic."""
        configure_logging(settings.log_level)
        logger.info("Starting key pool service on port %d", settings.port)

        store = KeyPoolStore(state_file_path=settings.state_file_path)
        store.seed(settings.api_keys)
        try:
            store.load_state()
        except (OSError, ValueError, KeyError) as exc:
            # Keep serving with the configured keys only.
            logger.error("Failed to load state from %s: %s", settings.state_file_path, exc)

        settings_store = SettingsStore(
            settings.settings_file_path, ReactivationConfig.from_settings(settings)
        )
        reactivation_config = settings_store.load()

        upstream = UpstreamClient(
            base_url=settings.upstream_base_url,
            models_timeout_seconds=settings.models_timeout_seconds,
            models_max_retries=settings.models_max_retries,
        )

        orchestrator = HealthTestOrchestrator(
            store=store,
            upstream=upstream,
            probe_timeout_seconds=settings.probe_timeout_seconds,
            concurrency_limit=settings.test_concurrency,
        )

        batch_actions = BatchLifecycleActions(store=store)

        scheduler = ReactivationScheduler(
            store=store,
            orchestrator=orchestrator,
            probe_model=settings.probe_model,
        )
        scheduler.start(reactivation_config)

        # Mount routers
        app.include_router(
            create_health_router(
                store=store, orchestrator=orchestrator, scheduler=scheduler
            )
        )
        app.include_router(create_keys_router(store=store, batch_actions=batch_actions))
        app.include_router(create_key_tests_router(orchestrator=orchestrator))
        app.include_router(create_proxied_models_router(store=store, upstream=upstream))
        app.include_router(
            create_settings_router(settings_store=settings_store, scheduler=scheduler)
        )

        app.state.store = store
        app.state.scheduler = scheduler

        logger.info(
            "Key pool service started",
            extra={"event": "service_started", "total": store.get_stats()["total"]},
        )

        yield

        # --- Shutdown ---
        logger.info("Shutting down key pool service…")
        try:
            await asyncio.wait_for(
                scheduler.stop(), timeout=settings.graceful_shutdown_seconds or None
            )
        except asyncio.TimeoutError:
            logger.warning("Scheduler did not stop within %ds", settings.graceful_shutdown_seconds)
        await upstream.aclose()
        logger.info("Key pool service shut down")

    return lifespan


def create_app(settings: KeyPoolSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``KeyPoolSettings`` eagerly so that a missing ``KEYPOOL_ADMIN_TOKEN``
    causes an immediate startup failure.
    """
    settings = settings or KeyPoolSettings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Key Pool Service",
        version="1.0.0",
        lifespan=_build_lifespan(settings),
    )

    register_error_handlers(app)

    # Starlette applies middleware in reverse order: request_id runs first.
    app.add_middleware(BearerAuthMiddleware, admin_token=settings.admin_token)
    app.add_middleware(RequestIdMiddleware)

    return app
