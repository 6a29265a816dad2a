"""Activity snapshots: schema, merge engine and derived metrics."""

from ris_collector.activity.calculator import DerivedMetrics, compute
from ris_collector.activity.merge import default_window, filter_by_window, merge, prune
from ris_collector.activity.schemas import (
    ActivityDelta,
    ActivitySnapshot,
    CommitActivity,
    EligibilityInfo,
    IssueActivity,
    PullRequestActivity,
    ReleaseActivity,
    RepositoryScalars,
    TimeWindow,
    utc_now,
)

__all__ = [
    "ActivityDelta",
    "ActivitySnapshot",
    "CommitActivity",
    "DerivedMetrics",
    "EligibilityInfo",
    "IssueActivity",
    "PullRequestActivity",
    "ReleaseActivity",
    "RepositoryScalars",
    "TimeWindow",
    "compute",
    "default_window",
    "filter_by_window",
    "merge",
    "prune",
    "utc_now",
]
