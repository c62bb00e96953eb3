"""Shared test fixtures for the key pool test suite."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from keypool.config.settings import KeyPoolSettings
from keypool.pool.store import KeyPoolStore
from keypool.services.health_test import HealthTestOrchestrator


# ---------------------------------------------------------------------------
# Ensure required env vars are set for KeyPoolSettings in tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal env vars so KeyPoolSettings can be instantiated in tests."""
    if "KEYPOOL_ADMIN_TOKEN" not in os.environ:
        monkeypatch.setenv("KEYPOOL_ADMIN_TOKEN", "test-admin-token")


# ---------------------------------------------------------------------------
# Settings / component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> KeyPoolSettings:
    """Test settings with files under a temp dir and no seeded keys."""
    return KeyPoolSettings(
        admin_token="test-admin-token",
        state_file_path=str(tmp_path / "state.json"),
        settings_file_path=str(tmp_path / "settings.yaml"),
        probe_timeout_seconds=1.0,
        test_concurrency=4,
    )


@pytest.fixture
def store(tmp_path) -> KeyPoolStore:
    return KeyPoolStore(state_file_path=str(tmp_path / "state.json"))


@pytest.fixture
def upstream() -> AsyncMock:
    """Upstream stand-in whose probe succeeds by default."""
    client = AsyncMock()
    client.probe = AsyncMock(return_value=None)
    client.list_models = AsyncMock(return_value={"data": [{"id": "Qwen/Qwen2.5-7B-Instruct"}]})
    return client


@pytest.fixture
def orchestrator(store: KeyPoolStore, upstream: AsyncMock) -> HealthTestOrchestrator:
    return HealthTestOrchestrator(
        store=store,
        upstream=upstream,
        probe_timeout_seconds=1.0,
        concurrency_limit=4,
    )


# ---------------------------------------------------------------------------
# Virtual clock for scheduler timing
# ---------------------------------------------------------------------------

class FakeClock:
    """Virtual wall clock with a sleep that only returns when advanced.

    ``advance`` walks through pending sleepers in deadline order, setting the
    clock to each deadline before waking it, and lets the event loop settle
    between wake-ups so woken tasks can register their next sleep.
    """

    def __init__(self, start: datetime) -> None:
        self.now = start
        self._sleepers: list[tuple[datetime, asyncio.Future]] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + timedelta(seconds=seconds), future))
        await future

    async def advance(self, seconds: float) -> None:
        target = self.now + timedelta(seconds=seconds)
        while True:
            await self._settle()
            due = [s for s in self._sleepers if s[0] <= target and not s[1].done()]
            if not due:
                break
            deadline, future = min(due, key=lambda s: s[0])
            self._sleepers.remove((deadline, future))
            self.now = deadline
            future.set_result(None)
        self._sleepers = [s for s in self._sleepers if not s[1].done()]
        self.now = target
        await self._settle()

    @staticmethod
    async def _settle() -> None:
        for _ in range(50):
            await asyncio.sleep(0)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

