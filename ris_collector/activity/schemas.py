"""
Activity snapshot schema.

CRITICAL: ActivitySnapshot is the durable per-repository record. It is
written by the collection orchestrator and the webhook processor and read by
the derived-metrics calculator. Field names are part of the persisted JSON;
renaming one orphans every stored snapshot.
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field

from ris_collector.libraries.schemas import RepositoryKey


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


def subtract_months(value: datetime, months: int) -> datetime:
    """Calendar-aware month subtraction, clamping the day (Mar 31 - 1 -> Feb 28/29)."""
    total = value.year * 12 + (value.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# ============================================================================
# Activity items
# ============================================================================


class ActivityItem(BaseModel):
    """Base for items tracked in snapshot arrays.

    Subclasses expose a stable ``key`` for deduplication and a ``timestamp``
    used for recency ordering, windowing and pruning.
    """

    @property
    def key(self) -> Any:
        raise NotImplementedError

    @property
    def timestamp(self) -> datetime:
        raise NotImplementedError


class PullRequestActivity(ActivityItem):
    id: int
    number: int
    title: str = ""
    created_at: UTCDateTime
    merged_at: UTCDateTime | None = None
    closed_at: UTCDateTime | None = None
    state: Literal["open", "closed"] = "open"
    merged: bool = False
    author: str = "unknown"
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    changed_files: int = Field(default=0, ge=0)
    first_response_at: UTCDateTime | None = None

    @property
    def key(self) -> int:
        return self.id

    @property
    def timestamp(self) -> datetime:
        return self.created_at


class IssueActivity(ActivityItem):
    id: int
    number: int
    title: str = ""
    created_at: UTCDateTime
    closed_at: UTCDateTime | None = None
    state: Literal["open", "closed"] = "open"
    author: str = "unknown"
    comments: int = Field(default=0, ge=0)
    labels: list[str] = Field(default_factory=list)
    first_response_at: UTCDateTime | None = None

    @property
    def key(self) -> int:
        return self.id

    @property
    def timestamp(self) -> datetime:
        return self.created_at


class CommitActivity(ActivityItem):
    sha: str
    date: UTCDateTime
    author: str = "unknown"
    message: str = ""

    @property
    def key(self) -> str:
        return self.sha

    @property
    def timestamp(self) -> datetime:
        return self.date


class ReleaseActivity(ActivityItem):
    id: int
    tag_name: str
    name: str = ""
    published_at: UTCDateTime
    prerelease: bool = False
    draft: bool = False

    @property
    def key(self) -> int:
        return self.id

    @property
    def timestamp(self) -> datetime:
        return self.published_at


# ============================================================================
# Snapshot
# ============================================================================


class EligibilityInfo(BaseModel):
    """Funding eligibility block owned by the approval workflow.

    The collection pipeline never edits this; it is carried forward verbatim.
    Unknown keys are preserved.
    """

    model_config = ConfigDict(extra="allow")

    eligibility_status: str | None = None
    sponsorship_level: str | None = None
    sponsorship_adjustment: float | None = None
    eligibility_notes: str | None = None
    eligibility_last_reviewed: str | None = None


class RepositoryScalars(BaseModel):
    """Always-current fields, replaced wholesale on every refresh."""

    stars: int = 0
    forks: int = 0
    is_archived: bool = False
    last_commit_date: UTCDateTime | None = None
    npm_downloads_12mo: int = 0
    npm_dependents: int = 0
    typescript_support: bool = False
    cdn_hits_12mo: int = 0
    ossf_score: float = 0.0


SCALAR_FIELDS = tuple(RepositoryScalars.model_fields)


class ActivitySnapshot(RepositoryScalars):
    """Historical activity record for one repository."""

    library_name: str
    owner: str
    repo: str

    first_collected_at: UTCDateTime = Field(default_factory=utc_now)
    last_updated_at: UTCDateTime = Field(default_factory=utc_now)
    collection_window_start: UTCDateTime = Field(default_factory=utc_now)
    collection_window_end: UTCDateTime = Field(default_factory=utc_now)

    prs: list[PullRequestActivity] = Field(default_factory=list)
    issues: list[IssueActivity] = Field(default_factory=list)
    commits: list[CommitActivity] = Field(default_factory=list)
    releases: list[ReleaseActivity] = Field(default_factory=list)

    is_complete: bool = False
    eligibility: EligibilityInfo | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_items(self) -> int:
        """Tracked item total: PRs + issues + commits (releases excluded)."""
        return len(self.prs) + len(self.issues) + len(self.commits)

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(self.owner, self.repo)

    def scalars(self) -> RepositoryScalars:
        return RepositoryScalars.model_validate(
            self.model_dump(include=set(SCALAR_FIELDS))
        )

    @classmethod
    def empty(
        cls,
        repo: RepositoryKey,
        library_name: str | None = None,
        now: datetime | None = None,
    ) -> "ActivitySnapshot":
        now = now or utc_now()
        return cls(
            library_name=library_name or repo.name,
            owner=repo.owner,
            repo=repo.name,
            first_collected_at=now,
            last_updated_at=now,
            collection_window_start=now,
            collection_window_end=now,
        )


# ============================================================================
# Incremental delta and windows
# ============================================================================


@dataclass
class ActivityDelta:
    """Items fetched for the interval ``(since, until]``. Never persisted."""

    since: datetime
    until: datetime
    new_prs: list[PullRequestActivity] = field(default_factory=list)
    new_issues: list[IssueActivity] = field(default_factory=list)
    new_commits: list[CommitActivity] = field(default_factory=list)
    new_releases: list[ReleaseActivity] = field(default_factory=list)

    @property
    def total_new_items(self) -> int:
        return (
            len(self.new_prs)
            + len(self.new_issues)
            + len(self.new_commits)
            + len(self.new_releases)
        )


@dataclass(frozen=True)
class TimeWindow:
    """Closed interval ``[start, end]``."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @classmethod
    def rolling(cls, months: int = 12, now: datetime | None = None) -> "TimeWindow":
        end = now or utc_now()
        return cls(start=subtract_months(end, months), end=end)
