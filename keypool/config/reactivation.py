"""Auto-reactivation settings model and its YAML-backed store.

``ReactivationConfig`` validates every field on construction so a malformed
interval, crontab or timezone is rejected when settings are saved, never when
the scheduler fires. ``SettingsStore`` persists the config under the
``auto_reactivation`` key of the settings YAML file.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import timedelta
from enum import Enum
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import croniter
from pydantic import BaseModel, field_validator

from keypool.config.settings import KeyPoolSettings

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class ReactivationMode(str, Enum):
    """How the scheduler computes its fire times."""

    INTERVAL = "interval"
    SCHEDULED = "scheduled"


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"10m"``, ``"1h30m"`` or ``"500ms"``.

    Raises ``ValueError`` for anything else, including zero durations.
    """
    compact = text.strip().replace(" ", "")
    if not compact:
        raise ValueError("duration is empty")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(compact):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(compact):
        raise ValueError(f"invalid duration {text!r}; use units h, m, s, ms (e.g. '10m')")
    if total <= 0:
        raise ValueError("duration must be positive")
    return timedelta(seconds=total)


class ReactivationConfig(BaseModel):
    """Persisted auto-reactivation settings."""

    enabled: bool = True
    mode: ReactivationMode = ReactivationMode.INTERVAL
    interval: str = "10m"
    cron_spec: str = "*/10 * * * *"
    timezone: str = "UTC"

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        parse_duration(value)
        return value.strip()

    @field_validator("cron_spec")
    @classmethod
    def _check_cron_spec(cls, value: str) -> str:
        spec = value.strip()
        if len(spec.split()) != 5 or not croniter.is_valid(spec):
            raise ValueError(f"invalid cron expression {value!r}")
        return spec

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @property
    def interval_delta(self) -> timedelta:
        return parse_duration(self.interval)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_settings(cls, settings: KeyPoolSettings) -> ReactivationConfig:
        """Build the default config from environment settings."""
        return cls(
            enabled=settings.reactivation_enabled,
            mode=settings.reactivation_mode,
            interval=settings.reactivation_interval,
            cron_spec=settings.reactivation_cron_spec,
            timezone=settings.reactivation_timezone,
        )


class SettingsStore:
    """Owns the persisted ReactivationConfig.

    Parameters
    ----------
    path:
        Settings YAML file. Created on first ``update``.
    defaults:
        Config used when the file is missing or unreadable.
    """

    def __init__(self, path: str, defaults: ReactivationConfig) -> None:
        self._path = Path(path)
        self._defaults = defaults
        self._current = defaults

    def load(self) -> ReactivationConfig:
        """Load the config from disk, falling back to the defaults."""
        if not self._path.exists():
            logger.info("Settings file %s not found, using defaults", self._path)
            self._current = self._defaults
            return self._current

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            logger.error("Failed to parse settings YAML at %s: %s", self._path, exc)
            self._current = self._defaults
            return self._current

        section = raw.get("auto_reactivation") if isinstance(raw, dict) else None
        if not isinstance(section, dict):
            logger.warning("Settings YAML missing 'auto_reactivation', using defaults")
            self._current = self._defaults
            return self._current

        try:
            self._current = ReactivationConfig.model_validate(
                {**self._defaults.model_dump(mode="json"), **section}
            )
        except ValueError as exc:
            logger.error("Invalid auto_reactivation settings in %s: %s", self._path, exc)
            self._current = self._defaults

        return self._current

    def current(self) -> ReactivationConfig:
        return self._current

    def update(self, config: ReactivationConfig) -> ReactivationConfig:
        """Persist ``config`` and make it current.

        The file is written before the in-memory copy is swapped, so a failed
        write leaves the previous config in effect.
        """
        document = {"auto_reactivation": config.model_dump(mode="json")}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(document, handle, sort_keys=False)
            os.replace(tmp_path, self._path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._current = config
        logger.info(
            "Auto-reactivation settings saved",
            extra={"event": "settings_saved", "mode": config.mode.value},
        )
        return config
