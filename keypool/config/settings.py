"""Pydantic Settings for the key pool service.

All environment variables use the KEYPOOL_ prefix.
Example: KEYPOOL_PORT=8980, KEYPOOL_ADMIN_TOKEN=my-secret-token,
KEYPOOL_API_KEYS='["ms-key-1", "ms-key-2"]'
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class KeyPoolSettings(BaseSettings):
    """Key pool service configuration validated from environment variables."""

    # Service
    port: int = 8980
    admin_token: str = Field(..., min_length=1)  # Bearer token for the admin API
    log_level: str = "INFO"

    # Key pool
    api_keys: list[str] = []  # Seed keys, source="config"
    state_file_path: str = "state.json"  # Persisted user-added keys
    settings_file_path: str = "settings.yaml"  # Persisted reactivation settings

    # Upstream
    upstream_base_url: str = "https://api-inference.modelscope.cn/v1"
    models_timeout_seconds: float = Field(default=30.0, gt=0)
    models_max_retries: int = Field(default=3, ge=1)

    # Health tests
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    test_concurrency: int = Field(default=10, ge=1, le=100)
    probe_model: str = "Qwen/Qwen2.5-7B-Instruct"  # Target model for reactivation ticks

    # Auto-reactivation defaults (used until settings are saved)
    reactivation_enabled: bool = True
    reactivation_mode: str = "interval"
    reactivation_interval: str = "10m"
    reactivation_cron_spec: str = "*/10 * * * *"
    reactivation_timezone: str = "UTC"

    # Shutdown
    graceful_shutdown_seconds: int = Field(default=10, ge=0)

    model_config = {"env_prefix": "KEYPOOL_"}
