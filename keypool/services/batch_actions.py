"""Bulk add / remove with continue-on-error aggregation.

Each candidate goes through the store individually; a malformed, duplicate
or missing value fails that item only and the batch carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from keypool.middleware.error_handler import KeyPoolError
from keypool.pool.store import KeyPoolStore

logger = logging.getLogger(__name__)


@dataclass
class ItemError:
    value: str
    error: str


@dataclass
class BatchOutcome:
    """Aggregate result of a batch action."""

    action: str
    succeeded_count: int = 0
    failed_count: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded_count + self.failed_count

    @property
    def message(self) -> str:
        verb = "Added" if self.action == "add" else "Removed"
        return (
            f"Processed {self.processed} keys. "
            f"{verb}: {self.succeeded_count}, Failed: {self.failed_count}"
        )

    def to_response(self) -> dict:
        count_field = "addedCount" if self.action == "add" else "removedCount"
        return {
            count_field: self.succeeded_count,
            "failedCount": self.failed_count,
            "message": self.message,
            "errors": [{"value": e.value, "error": e.error} for e in self.errors],
        }


class BatchLifecycleActions:
    """Batch add / remove layered on ``KeyPoolStore``."""

    def __init__(self, *, store: KeyPoolStore) -> None:
        self._store = store

    def batch_add(self, values: list[str]) -> BatchOutcome:
        """Add every value; duplicates (in the pool or earlier in the batch) fail."""
        outcome = BatchOutcome(action="add")
        for value in values:
            try:
                self._store.add(value)
            except KeyPoolError as exc:
                outcome.failed_count += 1
                outcome.errors.append(ItemError(value=value, error=exc.message))
            else:
                outcome.succeeded_count += 1

        logger.info(
            "Batch add completed: added=%d failed=%d",
            outcome.succeeded_count,
            outcome.failed_count,
            extra={"event": "batch_add", "total": len(values)},
        )
        return outcome

    def batch_remove(self, values: list[str]) -> BatchOutcome:
        """Delete every value; missing keys fail individually."""
        outcome = BatchOutcome(action="remove")
        for value in values:
            try:
                self._store.delete(value)
            except KeyPoolError as exc:
                outcome.failed_count += 1
                outcome.errors.append(ItemError(value=value, error=exc.message))
            else:
                outcome.succeeded_count += 1

        logger.info(
            "Batch remove completed: removed=%d failed=%d",
            outcome.succeeded_count,
            outcome.failed_count,
            extra={"event": "batch_remove", "total": len(values)},
        )
        return outcome
