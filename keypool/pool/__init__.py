"""Key pool package — key records and the lifecycle store."""

from keypool.pool.store import KeyPoolStore, normalize_key_value
from keypool.pool.types import ApiKey, KeySource, KeyStatus

__all__ = ["ApiKey", "KeyPoolStore", "KeySource", "KeyStatus", "normalize_key_value"]
