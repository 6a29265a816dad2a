"""
Merge engine for activity snapshots.

Combines a cached snapshot with an incremental delta and prunes history
beyond the retention horizon. Both operations are pure: they return a new
snapshot and never touch the one passed in.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import TypeVar

from ris_collector.activity.schemas import (
    ActivityDelta,
    ActivityItem,
    ActivitySnapshot,
    RepositoryScalars,
    TimeWindow,
    subtract_months,
    utc_now,
)

ItemT = TypeVar("ItemT", bound=ActivityItem)

DEFAULT_RETENTION_YEARS = 3


def _newest_first(items: Iterable[ItemT]) -> list[ItemT]:
    # Key breaks timestamp ties so repeated merges order identically
    return sorted(items, key=lambda item: (item.timestamp, str(item.key)), reverse=True)


def merge_items(existing: Iterable[ItemT], incoming: Iterable[ItemT]) -> list[ItemT]:
    """Overlay ``incoming`` on ``existing`` by stable key; incoming wins."""
    by_key: dict[object, ItemT] = {item.key: item for item in existing}
    for item in incoming:
        by_key[item.key] = item
    return _newest_first(by_key.values())


def merge(
    cached: ActivitySnapshot,
    delta: ActivityDelta,
    updated_scalars: RepositoryScalars | None = None,
    now: datetime | None = None,
) -> ActivitySnapshot:
    """
    Merge an incremental delta into a cached snapshot.

    Item arrays are overlaid by key and re-sorted newest first. Scalar
    fields are replaced wholesale by ``updated_scalars`` (kept as-is when
    omitted). Merging the same delta twice with the same ``now`` yields an
    equal snapshot.

    Args:
        cached: Snapshot to merge into
        delta: Newly fetched items
        updated_scalars: Always-current fields from the latest refresh
        now: Reference time for ``last_updated_at``

    Returns:
        New merged snapshot
    """
    update: dict[str, object] = {
        "prs": merge_items(cached.prs, delta.new_prs),
        "issues": merge_items(cached.issues, delta.new_issues),
        "commits": merge_items(cached.commits, delta.new_commits),
        "releases": merge_items(cached.releases, delta.new_releases),
        "last_updated_at": now or utc_now(),
        "collection_window_end": delta.until,
    }
    if updated_scalars is not None:
        update.update(updated_scalars.model_dump())

    return cached.model_copy(update=update, deep=True)


def retention_cutoff(retention_years: int, now: datetime | None = None) -> datetime:
    return subtract_months(now or utc_now(), retention_years * 12)


def prune(
    snapshot: ActivitySnapshot,
    retention_years: int = DEFAULT_RETENTION_YEARS,
    now: datetime | None = None,
) -> ActivitySnapshot:
    """Drop items strictly older than ``now - retention_years``."""
    cutoff = retention_cutoff(retention_years, now)

    def keep(items: list[ItemT]) -> list[ItemT]:
        return [item for item in items if item.timestamp >= cutoff]

    return snapshot.model_copy(
        update={
            "prs": keep(snapshot.prs),
            "issues": keep(snapshot.issues),
            "commits": keep(snapshot.commits),
            "releases": keep(snapshot.releases),
            "collection_window_start": cutoff,
        },
        deep=True,
    )


def filter_by_window(items: Iterable[ItemT], window: TimeWindow) -> list[ItemT]:
    """Items whose timestamp falls inside the closed window."""
    return [item for item in items if window.contains(item.timestamp)]


def default_window(months: int = 12, now: datetime | None = None) -> TimeWindow:
    return TimeWindow.rolling(months=months, now=now)
