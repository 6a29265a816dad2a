"""Persistent state store and key layout."""

from ris_collector.storage.errors import CorruptedStateError
from ris_collector.storage.store import RedisStateStore

__all__ = ["CorruptedStateError", "RedisStateStore"]
