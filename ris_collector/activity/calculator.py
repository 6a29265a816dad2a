"""
Derived metrics calculator.

Pure projection from an ActivitySnapshot and a time window into the
normalized statistics consumed by the scoring engine. Nothing here performs
I/O; results depend only on the snapshot, the window and the reference time.
"""

import math
from collections import Counter
from datetime import datetime
from statistics import median

from pydantic import BaseModel, Field

from ris_collector.activity.merge import default_window, filter_by_window
from ris_collector.activity.schemas import (
    ActivitySnapshot,
    ReleaseActivity,
    TimeWindow,
    UTCDateTime,
)

ACTIVE_MAINTAINER_MIN_COMMITS = 12

_SECONDS_PER_HOUR = 3600.0
_SECONDS_PER_DAY = 86400.0


class DerivedMetrics(BaseModel):
    """Time-windowed statistics for one repository."""

    library_name: str
    owner: str
    repo: str
    collected_at: UTCDateTime
    window_start: UTCDateTime
    window_end: UTCDateTime
    is_partial: bool = False

    # Ecosystem footprint
    npm_downloads: int = 0
    gh_dependents: int = 0
    import_mentions: int = 0
    cdn_hits: int = 0

    # Contribution quality
    pr_count: int = 0
    pr_merged: int = 0
    pr_points: float = 0.0
    issues_opened: int = 0
    issues_closed: int = 0
    issue_resolution_rate: float = 0.0
    median_first_response_hours: float = 0.0
    unique_contribs: int = 0

    # Maintainer health
    active_maintainers: int = 0
    release_cadence_days: float = 0.0
    top_author_share: float = 0.0
    triage_latency_hours: float = 0.0
    maintainer_survey: float = Field(default=0.0, ge=0.0, le=1.0)

    # Community benefit
    docs_completeness: float = Field(default=0.0, ge=0.0, le=1.0)
    tutorials_refs: int = 0
    helpful_events: int = 0
    user_satisfaction: float = Field(default=0.0, ge=0.0, le=1.0)

    # Mission alignment (manually curated upstream, except security)
    typescript_support: bool = False
    security_practices: float = 0.0


def compute(
    snapshot: ActivitySnapshot,
    window: TimeWindow | None = None,
    now: datetime | None = None,
    is_partial: bool = False,
) -> DerivedMetrics:
    """
    Compute derived metrics for a snapshot.

    Args:
        snapshot: Activity record to project
        window: Time window; defaults to the 12 months ending at ``now``
        now: Reference time for recency heuristics; defaults to window end
        is_partial: Whether some sources are missing from the snapshot

    Returns:
        DerivedMetrics
    """
    window = window or default_window(now=now)
    reference = now or window.end

    prs = filter_by_window(snapshot.prs, window)
    issues = filter_by_window(snapshot.issues, window)
    commits = filter_by_window(snapshot.commits, window)
    releases = filter_by_window(snapshot.releases, window)

    pr_merged = sum(1 for pr in prs if pr.merged)
    pr_points = sum(math.log10(1 + pr.additions + pr.deletions) for pr in prs if pr.merged)

    issues_opened = len(issues)
    issues_closed = sum(
        1 for issue in issues if issue.closed_at is not None and issue.closed_at >= window.start
    )
    resolution_rate = issues_closed / issues_opened if issues_opened else 0.0

    response_seconds = [
        (item.first_response_at - item.created_at).total_seconds()
        for item in [*prs, *issues]
        if item.first_response_at is not None
    ]
    median_response_hours = (
        median(response_seconds) / _SECONDS_PER_HOUR if response_seconds else 0.0
    )

    contributors = {pr.author for pr in prs}
    contributors.update(issue.author for issue in issues)
    contributors.update(commit.author for commit in commits)

    commit_counts = Counter(commit.author for commit in commits)
    active_maintainers = sum(
        1 for count in commit_counts.values() if count >= ACTIVE_MAINTAINER_MIN_COMMITS
    )
    top_author_share = (
        commit_counts.most_common(1)[0][1] / len(commits) if commits else 0.0
    )

    stable_releases = [r for r in releases if not r.prerelease and not r.draft]
    days_since_commit = _days_since(snapshot.last_commit_date, reference)

    return DerivedMetrics(
        library_name=snapshot.library_name,
        owner=snapshot.owner,
        repo=snapshot.repo,
        collected_at=snapshot.last_updated_at,
        window_start=window.start,
        window_end=window.end,
        is_partial=is_partial,
        npm_downloads=snapshot.npm_downloads_12mo,
        gh_dependents=snapshot.npm_dependents,
        import_mentions=snapshot.stars // 100,
        cdn_hits=snapshot.cdn_hits_12mo,
        pr_count=len(prs),
        pr_merged=pr_merged,
        pr_points=pr_points,
        issues_opened=issues_opened,
        issues_closed=issues_closed,
        issue_resolution_rate=resolution_rate,
        median_first_response_hours=median_response_hours,
        unique_contribs=len(contributors),
        active_maintainers=active_maintainers,
        release_cadence_days=release_cadence(stable_releases),
        top_author_share=top_author_share,
        triage_latency_hours=median_response_hours,
        maintainer_survey=_maintainer_health(
            snapshot.is_archived, days_since_commit, active_maintainers, len(stable_releases)
        ),
        docs_completeness=_docs_completeness(snapshot, days_since_commit),
        tutorials_refs=snapshot.stars // 10,
        helpful_events=issues_closed,
        user_satisfaction=_user_satisfaction(resolution_rate, median_response_hours),
        typescript_support=snapshot.typescript_support,
        security_practices=snapshot.ossf_score,
    )


def release_cadence(releases: list[ReleaseActivity]) -> float:
    """Median days between consecutive releases; 0 with fewer than two."""
    if len(releases) < 2:
        return 0.0
    dates = sorted(r.published_at for r in releases)
    intervals = [
        (later - earlier).total_seconds() / _SECONDS_PER_DAY
        for earlier, later in zip(dates, dates[1:])
    ]
    return median(intervals)


def _days_since(moment: datetime | None, reference: datetime) -> float | None:
    if moment is None:
        return None
    return (reference - moment).total_seconds() / _SECONDS_PER_DAY


def _recency_points(days_since_commit: float | None) -> float:
    if days_since_commit is None:
        return 0.0
    if days_since_commit < 30:
        return 0.3
    if days_since_commit < 90:
        return 0.15
    return 0.0


def _docs_completeness(snapshot: ActivitySnapshot, days_since_commit: float | None) -> float:
    score = 0.0
    if snapshot.stars > 10000:
        score += 0.3
    elif snapshot.stars > 1000:
        score += 0.2
    elif snapshot.stars > 100:
        score += 0.1

    if not snapshot.is_archived:
        score += 0.2
    score += _recency_points(days_since_commit)
    if snapshot.releases:
        score += 0.2
    return min(1.0, score)


def _user_satisfaction(resolution_rate: float, median_response_hours: float) -> float:
    score = 0.5 + resolution_rate * 0.3
    if 0 < median_response_hours < 24:
        score += 0.2
    elif 0 < median_response_hours < 72:
        score += 0.1
    return min(1.0, max(0.0, score))


def _maintainer_health(
    is_archived: bool,
    days_since_commit: float | None,
    active_maintainers: int,
    release_count: int,
) -> float:
    score = 0.0 if is_archived else 0.3
    score += _recency_points(days_since_commit)

    if active_maintainers >= 3:
        score += 0.2
    elif active_maintainers >= 1:
        score += 0.1

    if release_count >= 4:
        score += 0.2
    elif release_count >= 1:
        score += 0.1
    return min(1.0, score)
