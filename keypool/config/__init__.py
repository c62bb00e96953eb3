"""Configuration module — environment settings and reactivation settings."""

from keypool.config.reactivation import (
    ReactivationConfig,
    ReactivationMode,
    SettingsStore,
    parse_duration,
)
from keypool.config.settings import KeyPoolSettings

__all__ = [
    "KeyPoolSettings",
    "ReactivationConfig",
    "ReactivationMode",
    "SettingsStore",
    "parse_duration",
]
