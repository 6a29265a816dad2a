"""Per-repository collection state machine and tracker."""

from ris_collector.state.schemas import (
    ALL_SOURCES,
    GITHUB_SOURCES,
    CollectionState,
    SourceName,
    SourceState,
    SourceStatus,
    backoff_minutes,
)
from ris_collector.state.tracker import CollectionStateTracker

__all__ = [
    "ALL_SOURCES",
    "GITHUB_SOURCES",
    "CollectionState",
    "CollectionStateTracker",
    "SourceName",
    "SourceState",
    "SourceStatus",
    "backoff_minutes",
]
