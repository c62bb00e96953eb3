"""Structured JSON logging configuration.

Every entry carries request_id, level, timestamp, logger and message. Key pool
fields (masked key, test run source/model/total, scheduler tick counters) are
attached through the ``extra`` dict on log calls and copied when present.

SECURITY: Key values are only ever logged through ``mask_key``; free text is
scrubbed of anything that looks like a token assignment.
"""

from __future__ import annotations

import json
import logging
import re
from contextvars import ContextVar
from datetime import datetime, timezone

# Set by RequestIdMiddleware for the duration of a request.
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_SENSITIVE_PATTERNS = re.compile(
    r"(admin.token|api.key|secret|password|token|authorization|bearer)"
    r"[\s]*[=:]?\s*(?:bearer\s+)?[A-Za-z0-9._\-]{8,}",
    re.IGNORECASE,
)

_EXTRA_FIELDS = (
    "event",
    "key",
    "source",
    "model",
    "total",
    "duration_ms",
    "mode",
    "fire_at",
    "reactivated",
    "still_disabled",
    "path",
    "source_ip",
    "reason",
)


def mask_key(value: str) -> str:
    """Return a log-safe rendition of a key value."""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None) or request_id_var.get(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)

        if hasattr(record, "error_reason"):
            entry["error_reason"] = self._sanitize(
                str(getattr(record, "error_reason"))
            )

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(
                self.formatException(record.exc_info)
            )

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
