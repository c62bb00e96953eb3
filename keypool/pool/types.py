"""Key record types for the key pool."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum


class KeyStatus(str, Enum):
    """Lifecycle status of a key."""

    ACTIVE = "active"
    DISABLED = "disabled"


class KeySource(str, Enum):
    """Where a key came from. Only user keys are persisted to the state file."""

    CONFIG = "config"
    USER = "user"


@dataclass
class ApiKey:
    """A single upstream credential and its lifecycle state.

    ``disabled_at`` is set if and only if ``status`` is DISABLED.
    ``last_failure_reason`` survives disable cycles until a reactivation.
    """

    value: str
    status: KeyStatus = KeyStatus.ACTIVE
    disabled_at: datetime | None = None
    last_failure_reason: str | None = None
    source: KeySource = KeySource.USER

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["source"] = self.source.value
        data["disabled_at"] = self.disabled_at.isoformat() if self.disabled_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ApiKey:
        disabled_at = data.get("disabled_at")
        status = KeyStatus(data.get("status", KeyStatus.ACTIVE.value))
        key = cls(
            value=data["value"],
            status=status,
            disabled_at=datetime.fromisoformat(disabled_at) if disabled_at else None,
            last_failure_reason=data.get("last_failure_reason") or None,
            source=KeySource(data.get("source", KeySource.USER.value)),
        )
        # Repair records that would violate the disabled_at invariant.
        if key.status == KeyStatus.DISABLED and key.disabled_at is None:
            key.disabled_at = datetime.fromtimestamp(0, timezone.utc)
        if key.status == KeyStatus.ACTIVE:
            key.disabled_at = None
        return key
