"""Public models for the key pool service."""

from keypool.models.health_test import (
    KeyTestResult,
    KeyTestRun,
    ResultStatus,
    RunComplete,
    RunSource,
)
from keypool.models.keys import BatchKeysRequest, DisableKeyRequest, KeyValueRequest
from keypool.models.responses import ApiResponse, ok

__all__ = [
    "ApiResponse",
    "BatchKeysRequest",
    "DisableKeyRequest",
    "KeyTestResult",
    "KeyTestRun",
    "KeyValueRequest",
    "ResultStatus",
    "RunComplete",
    "RunSource",
    "ok",
]
