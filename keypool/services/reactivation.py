"""Background auto-reactivation of disabled keys.

State machine: STOPPED -> IDLE -> RUNNING_TICK -> IDLE ... -> STOPPED.

The loop sleeps until ``next_fire_time`` and then launches a tick as its own
task, so the timer keeps its cadence while a slow tick runs. A fire time that
arrives while the previous tick is still running is skipped and logged; ticks
never queue up behind each other.

Each tick snapshots the DISABLED keys, probes each one through the
orchestrator's single-key primitive and reactivates the ones that pass. Keys
that still fail stay disabled with their failure reason refreshed.

Interval mode keeps a fixed cadence measured from the previous fire time.
Scheduled mode fires on the crontab evaluated in the configured timezone.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum

from croniter import croniter

from keypool.config.reactivation import ReactivationConfig, ReactivationMode
from keypool.logging_config import mask_key
from keypool.middleware.error_handler import KeyNotFoundError
from keypool.pool.store import KeyPoolStore
from keypool.pool.types import KeyStatus
from keypool.services.health_test import HealthTestOrchestrator

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    RUNNING_TICK = "running_tick"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_fire_time(config: ReactivationConfig, now: datetime) -> datetime:
    """Return the next fire time strictly after ``now``.

    Pure function of the config and ``now``. Naive datetimes are taken as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if config.mode == ReactivationMode.INTERVAL:
        return now + config.interval_delta

    local_now = now.astimezone(config.tzinfo)
    return croniter(config.cron_spec, local_now).get_next(datetime)


class ReactivationScheduler:
    """Process-wide timer loop that re-probes disabled keys.

    Parameters
    ----------
    store:
        Key pool to scan and update.
    orchestrator:
        Provides ``probe_key(value, model)``.
    probe_model:
        Target model used for every reactivation probe.
    clock:
        Returns the current aware datetime. Injectable for tests.
    sleep:
        Coroutine function sleeping for a number of seconds. Injectable for
        tests.
    """

    def __init__(
        self,
        *,
        store: KeyPoolStore,
        orchestrator: HealthTestOrchestrator,
        probe_model: str,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._probe_model = probe_model
        self._clock = clock
        self._sleep = sleep

        self._config: ReactivationConfig | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._lifecycle_lock = asyncio.Lock()

        # Stats tracking
        self.ticks_run = 0
        self.ticks_skipped = 0
        self.last_tick_at: datetime | None = None
        self.next_fire_at: datetime | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        if self._loop_task is None or self._loop_task.done():
            return SchedulerState.STOPPED
        if self._tick_task is not None and not self._tick_task.done():
            return SchedulerState.RUNNING_TICK
        return SchedulerState.IDLE

    def start(self, config: ReactivationConfig) -> None:
        """Start the loop with ``config``; a disabled config leaves it stopped."""
        if self.state != SchedulerState.STOPPED:
            logger.warning("Reactivation scheduler already running, skipping start")
            return

        self._config = config
        if not config.enabled:
            logger.info("Auto-reactivation is disabled")
            return

        anchor = self._clock()
        self._loop_task = asyncio.create_task(
            self._run_loop(config, anchor), name="reactivation-scheduler"
        )
        logger.info(
            "Reactivation scheduler started",
            extra={
                "event": "scheduler_started",
                "mode": config.mode.value,
                "fire_at": next_fire_time(config, anchor).isoformat(),
            },
        )

    async def stop(self) -> None:
        """Cancel the loop and any in-flight tick, and wait for both."""
        async with self._lifecycle_lock:
            await self._stop_tasks()

    async def reload(self, config: ReactivationConfig) -> None:
        """Apply new settings: restart so the next tick follows the new cadence.

        Concurrent reloads are serialized; the last one to acquire the lock
        decides the running config.
        """
        async with self._lifecycle_lock:
            await self._stop_tasks()
            self.start(config)

    async def _stop_tasks(self) -> None:
        loop_task = self._loop_task
        tick_task = self._tick_task
        tasks = [
            task
            for task in (loop_task, tick_task)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # Only forget the tasks cancelled above.
        if self._loop_task is loop_task:
            self._loop_task = None
            self.next_fire_at = None
        if self._tick_task is tick_task:
            self._tick_task = None
        if loop_task is not None:
            logger.info("Reactivation scheduler stopped", extra={"event": "scheduler_stopped"})

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    async def _run_loop(self, config: ReactivationConfig, anchor: datetime) -> None:
        previous = anchor
        while True:
            fire_at = next_fire_time(config, previous)
            self.next_fire_at = fire_at

            delay = (fire_at - self._clock()).total_seconds()
            if delay > 0:
                await self._sleep(delay)

            if config.mode == ReactivationMode.INTERVAL:
                previous = fire_at
                missed = (self._clock() - fire_at) // config.interval_delta
                if missed > 0:
                    # Woke late (suspend or clock jump): drop the missed slots at once.
                    previous = fire_at + missed * config.interval_delta
                    self.ticks_skipped += missed
                    logger.warning(
                        "Reactivation scheduler woke late, %d interval slots missed",
                        missed,
                        extra={"event": "ticks_missed", "fire_at": fire_at.isoformat()},
                    )
            else:
                previous = max(fire_at, self._clock())

            if self._tick_task is not None and not self._tick_task.done():
                self.ticks_skipped += 1
                logger.warning(
                    "Previous reactivation tick still running, skipping this tick",
                    extra={"event": "tick_skipped", "fire_at": fire_at.isoformat()},
                )
                continue

            self._tick_task = asyncio.create_task(
                self._run_tick(fire_at), name="reactivation-tick"
            )

    async def _run_tick(self, fire_at: datetime) -> None:
        """Probe every disabled key once. Per-key failures never abort the tick."""
        self.ticks_run += 1
        self.last_tick_at = fire_at
        start_time = time.monotonic()
        reactivated = 0
        still_disabled = 0

        try:
            disabled = self._store.values_with_status(KeyStatus.DISABLED)
            for value in disabled:
                result = await self._orchestrator.probe_key(value, self._probe_model)
                try:
                    if result.succeeded:
                        self._store.reactivate(value)
                        reactivated += 1
                    else:
                        self._store.disable(value, result.error or "Probe failed")
                        still_disabled += 1
                except KeyNotFoundError:
                    logger.debug(
                        "Key removed during reactivation tick",
                        extra={"key": mask_key(value)},
                    )

            if reactivated or still_disabled:
                self._store.save_state()
        except Exception:
            logger.exception(
                "Reactivation tick failed", extra={"event": "tick_failed"}
            )
            return

        logger.info(
            "Reactivation tick completed",
            extra={
                "event": "tick_completed",
                "fire_at": fire_at.isoformat(),
                "reactivated": reactivated,
                "still_disabled": still_disabled,
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "mode": self._config.mode.value if self._config else None,
            "enabled": self._config.enabled if self._config else False,
            "ticks_run": self.ticks_run,
            "ticks_skipped": self.ticks_skipped,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "next_fire_at": self.next_fire_at.isoformat() if self.next_fire_at else None,
        }
