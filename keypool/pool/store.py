"""Key pool store: the single owner of key records and their lifecycle.

All mutations go through this class. Each operation holds the pool lock for
its whole read-modify-write, so no caller ever sees a torn record (for
example DISABLED without ``disabled_at``); concurrent mutations on the same
key are serialized and the last one committed wins. ``list()`` returns copies
taken under the lock, giving a consistent point-in-time view.

User-added keys are persisted to a JSON state file; seed keys from settings
are not.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from keypool.logging_config import mask_key
from keypool.middleware.error_handler import (
    DuplicateKeyError,
    KeyNotFoundError,
    NoActiveKeysError,
    ValidationError,
)
from keypool.pool.types import ApiKey, KeySource, KeyStatus

logger = logging.getLogger(__name__)


def normalize_key_value(value: str) -> str:
    """Strip a candidate key value and reject empty or malformed ones."""
    candidate = (value or "").strip()
    if not candidate:
        raise ValidationError("Key value cannot be empty")
    if "," in candidate or any(ch.isspace() for ch in candidate):
        raise ValidationError("Key value must not contain whitespace or commas")
    return candidate


def _lookup_value(value: str) -> str:
    """Strip a value used to address an existing key, matching ``add``."""
    return (value or "").strip()


class KeyPoolStore:
    """Thread-safe, insertion-ordered pool of API keys.

    Parameters
    ----------
    state_file_path:
        JSON file holding user-added keys. ``None`` disables persistence.
    """

    def __init__(self, state_file_path: str | None = None) -> None:
        # A threading lock, not asyncio.Lock: no method awaits while holding it,
        # and it still serializes callers running on other threads.
        self._lock = threading.RLock()
        self._keys: dict[str, ApiKey] = {}
        self._index = 0
        self._state_file_path = Path(state_file_path) if state_file_path else None

    # ------------------------------------------------------------------
    # Initialization / persistence
    # ------------------------------------------------------------------

    def seed(self, values: list[str]) -> int:
        """Add configured keys as ``source=config``. Duplicates are skipped."""
        added = 0
        with self._lock:
            for raw in values:
                try:
                    value = normalize_key_value(raw)
                except ValidationError:
                    logger.warning("Skipping malformed configured key")
                    continue
                if value in self._keys:
                    continue
                self._keys[value] = ApiKey(value=value, source=KeySource.CONFIG)
                added += 1
        logger.info("Seeded %d configured keys", added)
        return added

    def load_state(self) -> int:
        """Append persisted user keys, skipping values already in the pool.

        A missing file is a fresh start. Returns the number of keys loaded.
        """
        if self._state_file_path is None:
            return 0
        if not self._state_file_path.exists():
            logger.info("State file %s does not exist, starting fresh", self._state_file_path)
            return 0

        records = json.loads(self._state_file_path.read_text(encoding="utf-8")) or []
        loaded = 0
        with self._lock:
            for record in records:
                key = ApiKey.from_dict(record)
                if key.value in self._keys:
                    continue
                key.source = KeySource.USER
                self._keys[key.value] = key
                loaded += 1

        logger.info(
            "Loaded %d user keys from %s (pool size %d)",
            loaded,
            self._state_file_path,
            len(self._keys),
        )
        return loaded

    def save_state(self) -> None:
        """Atomically write all user-sourced keys to the state file."""
        if self._state_file_path is None:
            return

        with self._lock:
            records = [
                key.to_dict() for key in self._keys.values() if key.source == KeySource.USER
            ]

        directory = self._state_file_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2)
            os.replace(tmp_path, self._state_file_path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            logger.error("Failed to write state file %s", self._state_file_path)
            raise

        logger.debug("State saved (%d user keys)", len(records))

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def add(self, value: str) -> ApiKey:
        """Add a new ACTIVE key. Raises DuplicateKeyError if already present."""
        value = normalize_key_value(value)
        with self._lock:
            if value in self._keys:
                raise DuplicateKeyError(f"Key {mask_key(value)} already exists")
            key = ApiKey(value=value, source=KeySource.USER)
            self._keys[value] = key
            snapshot = replace(key)

        logger.info("Added key", extra={"event": "key_added", "key": mask_key(value)})
        return snapshot

    def delete(self, value: str) -> None:
        """Remove a key permanently."""
        value = _lookup_value(value)
        with self._lock:
            if self._keys.pop(value, None) is None:
                raise KeyNotFoundError(f"Key {mask_key(value)} not found")
        logger.info("Deleted key", extra={"event": "key_deleted", "key": mask_key(value)})

    def disable(self, value: str, reason: str) -> ApiKey:
        """Mark a key DISABLED with ``reason``.

        Disabling an already disabled key keeps its original ``disabled_at``
        and only refreshes the reason.
        """
        value = _lookup_value(value)
        with self._lock:
            key = self._keys.get(value)
            if key is None:
                raise KeyNotFoundError(f"Key {mask_key(value)} not found")
            if key.status != KeyStatus.DISABLED:
                key.status = KeyStatus.DISABLED
                key.disabled_at = datetime.now(timezone.utc)
            key.last_failure_reason = reason
            snapshot = replace(key)

        logger.info(
            "Disabled key",
            extra={"event": "key_disabled", "key": mask_key(value), "error_reason": reason},
        )
        return snapshot

    def reactivate(self, value: str) -> ApiKey:
        """Mark a key ACTIVE and clear ``disabled_at`` and the failure reason."""
        value = _lookup_value(value)
        with self._lock:
            key = self._keys.get(value)
            if key is None:
                raise KeyNotFoundError(f"Key {mask_key(value)} not found")
            key.status = KeyStatus.ACTIVE
            key.disabled_at = None
            key.last_failure_reason = None
            snapshot = replace(key)

        logger.info("Reactivated key", extra={"event": "key_reactivated", "key": mask_key(value)})
        return snapshot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, value: str) -> ApiKey:
        value = _lookup_value(value)
        with self._lock:
            key = self._keys.get(value)
            if key is None:
                raise KeyNotFoundError(f"Key {mask_key(value)} not found")
            return replace(key)

    def list(self) -> list[ApiKey]:
        """Point-in-time copy of every key, in insertion order."""
        with self._lock:
            return [replace(key) for key in self._keys.values()]

    def values_with_status(self, status: KeyStatus) -> list[str]:
        with self._lock:
            return [key.value for key in self._keys.values() if key.status == status]

    def next_active(self) -> ApiKey:
        """Round-robin selection over ACTIVE keys.

        Raises ``NoActiveKeysError`` when every key is disabled or the pool is
        empty.
        """
        with self._lock:
            keys = list(self._keys.values())
            size = len(keys)
            for _ in range(size):
                key = keys[self._index % size]
                self._index = (self._index + 1) % size
                if key.status == KeyStatus.ACTIVE:
                    return replace(key)
        raise NoActiveKeysError()

    def get_stats(self) -> dict:
        """Return pool statistics for the health endpoint."""
        with self._lock:
            total = len(self._keys)
            active = sum(1 for k in self._keys.values() if k.status == KeyStatus.ACTIVE)
        return {"total": total, "active": active, "disabled": total - active}
