"""
Per-repository collection state.

CollectionState is a small finite-state machine: each of the eight sources
moves between pending, in_progress, completed and failed. Completeness is
always derived from the per-source statuses and never stored as independent
truth; the serialized ``is_complete`` / ``is_partial`` values exist for
external readers and are ignored when a record is loaded.
"""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, computed_field, model_validator

from ris_collector.activity.schemas import UTCDateTime, utc_now


class SourceName(str, Enum):
    """The eight independent data origins, in canonical collection order."""

    GITHUB_BASIC = "github_basic"
    GITHUB_PRS = "github_prs"
    GITHUB_ISSUES = "github_issues"
    GITHUB_COMMITS = "github_commits"
    GITHUB_RELEASES = "github_releases"
    NPM_METRICS = "npm_metrics"
    CDN_METRICS = "cdn_metrics"
    OSSF_METRICS = "ossf_metrics"


ALL_SOURCES: tuple[SourceName, ...] = tuple(SourceName)

GITHUB_SOURCES: tuple[SourceName, ...] = (
    SourceName.GITHUB_BASIC,
    SourceName.GITHUB_PRS,
    SourceName.GITHUB_ISSUES,
    SourceName.GITHUB_COMMITS,
    SourceName.GITHUB_RELEASES,
)


class SourceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# in_progress is included: a crash mid-fetch leaves it behind
RETRYABLE_STATUSES = frozenset(
    {SourceStatus.PENDING, SourceStatus.FAILED, SourceStatus.IN_PROGRESS}
)


class SourceState(BaseModel):
    status: SourceStatus = SourceStatus.PENDING
    collected_at: UTCDateTime | None = None
    error: str | None = None
    retry_count: int = Field(default=0, ge=0)
    items_collected: int | None = None


def backoff_minutes(retry_count: int, cap_minutes: int) -> int:
    """Minutes until the next retry: ``min(2**retry_count, cap)``."""
    # Bound the exponent so huge retry counts never build huge integers
    return min(2 ** min(retry_count, 32), cap_minutes)


class CollectionState(BaseModel):
    """Collection progress for one repository across all eight sources."""

    repository: str
    sources: dict[SourceName, SourceState] = Field(default_factory=dict)
    started_at: UTCDateTime = Field(default_factory=utc_now)
    completed_at: UTCDateTime | None = None
    last_attempt_at: UTCDateTime = Field(default_factory=utc_now)
    attempt_count: int = Field(default=0, ge=0)
    next_retry_at: UTCDateTime | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_derived_flags(cls, data: object) -> object:
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if k not in ("is_complete", "is_partial")}
        return data

    @model_validator(mode="after")
    def _fill_missing_sources(self) -> "CollectionState":
        for source in ALL_SOURCES:
            self.sources.setdefault(source, SourceState())
        return self

    # ── Derived ─────────────────────────────────────────────────

    @property
    def completed_count(self) -> int:
        return sum(
            1 for s in self.sources.values() if s.status == SourceStatus.COMPLETED
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_complete(self) -> bool:
        return self.completed_count == len(ALL_SOURCES)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_partial(self) -> bool:
        return 0 < self.completed_count < len(ALL_SOURCES)

    def source(self, name: SourceName) -> SourceState:
        return self.sources[name]

    def failed_sources(self) -> list[SourceName]:
        return [
            name for name in ALL_SOURCES
            if self.sources[name].status == SourceStatus.FAILED
        ]

    def sources_needing_collection(self) -> list[SourceName]:
        return [
            name for name in ALL_SOURCES
            if self.sources[name].status in RETRYABLE_STATUSES
        ]

    # ── Transitions ─────────────────────────────────────────────

    def start(self, name: SourceName, now: datetime) -> None:
        self.sources[name].status = SourceStatus.IN_PROGRESS
        self.last_attempt_at = now

    def complete(
        self, name: SourceName, now: datetime, items_collected: int | None = None
    ) -> None:
        state = self.sources[name]
        state.status = SourceStatus.COMPLETED
        state.collected_at = now
        state.items_collected = items_collected
        state.error = None
        if self.is_complete:
            self.completed_at = now
            self.next_retry_at = None

    def fail(self, name: SourceName, error: str, now: datetime, cap_minutes: int) -> None:
        state = self.sources[name]
        state.status = SourceStatus.FAILED
        state.error = error
        state.retry_count += 1
        self.attempt_count += 1
        self.last_attempt_at = now
        self.completed_at = None
        self.next_retry_at = now + timedelta(
            minutes=backoff_minutes(state.retry_count, cap_minutes)
        )

    def reset_failed(self, now: datetime) -> list[SourceName]:
        """Return failed sources to pending and schedule an immediate retry."""
        reset = self.failed_sources()
        for name in reset:
            state = self.sources[name]
            state.status = SourceStatus.PENDING
            state.error = None
        self.next_retry_at = now
        return reset
