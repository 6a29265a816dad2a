"""
GitHub REST collector.

Fetches repository basic stats and the four activity lists (pull requests,
issues, commits, releases). Full fetches are bounded by a lookback window
and a per-source item cap; ``*_since`` fetches return only what changed
after a timestamp.

One collector instance is bound to one credential. The credential pool
holds several instances and rotates between them on RateLimitExceeded.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from ris_collector.activity.schemas import (
    ActivityDelta,
    CommitActivity,
    IssueActivity,
    PullRequestActivity,
    ReleaseActivity,
    subtract_months,
    utc_now,
)
from ris_collector.collectors.errors import RateLimitExceeded, UpstreamRequestError
from ris_collector.collectors.http_client import HTTPClient
from ris_collector.collectors.rate_limiter import GITHUB
from ris_collector.libraries.schemas import RepositoryKey

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
PER_PAGE = 100

ItemFilter = Callable[[dict[str, Any]], bool]


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class BasicStats:
    stars: int
    forks: int
    is_archived: bool
    last_commit_date: datetime | None


@dataclass
class GitHubDataset:
    """Result of a full fetch across all five GitHub sources."""

    basic: BasicStats
    prs: list[PullRequestActivity] = field(default_factory=list)
    issues: list[IssueActivity] = field(default_factory=list)
    commits: list[CommitActivity] = field(default_factory=list)
    releases: list[ReleaseActivity] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return len(self.prs) + len(self.issues) + len(self.commits)


# ============================================================================
# Payload mapping
# ============================================================================


def pr_from_api(data: dict[str, Any]) -> PullRequestActivity:
    return PullRequestActivity(
        id=data["id"],
        number=data["number"],
        title=data.get("title") or "",
        created_at=data["created_at"],
        merged_at=data.get("merged_at"),
        closed_at=data.get("closed_at"),
        state=data.get("state", "open"),
        merged=data.get("merged_at") is not None or bool(data.get("merged")),
        author=(data.get("user") or {}).get("login") or "unknown",
        additions=data.get("additions") or 0,
        deletions=data.get("deletions") or 0,
        changed_files=data.get("changed_files") or 0,
    )


def issue_from_api(data: dict[str, Any]) -> IssueActivity:
    labels = [
        label["name"] if isinstance(label, dict) else str(label)
        for label in data.get("labels") or []
        if (label.get("name") if isinstance(label, dict) else label)
    ]
    return IssueActivity(
        id=data["id"],
        number=data["number"],
        title=data.get("title") or "",
        created_at=data["created_at"],
        closed_at=data.get("closed_at"),
        state=data.get("state", "open"),
        author=(data.get("user") or {}).get("login") or "unknown",
        comments=data.get("comments") or 0,
        labels=labels,
    )


def commit_from_api(data: dict[str, Any]) -> CommitActivity:
    commit = data.get("commit") or {}
    commit_author = commit.get("author") or {}
    committer = commit.get("committer") or {}
    return CommitActivity(
        sha=data["sha"],
        date=commit_author.get("date") or committer["date"],
        author=(data.get("author") or {}).get("login") or commit_author.get("name") or "unknown",
        message=commit.get("message") or "",
    )


def release_from_api(data: dict[str, Any]) -> ReleaseActivity:
    return ReleaseActivity(
        id=data["id"],
        tag_name=data["tag_name"],
        name=data.get("name") or data["tag_name"],
        published_at=data.get("published_at") or data["created_at"],
        prerelease=bool(data.get("prerelease")),
        draft=bool(data.get("draft")),
    )


class GitHubCollector:
    """
    Collector for one GitHub credential.

    Example:
        collector = GitHubCollector(http, token="ghp_...")
        stats = await collector.fetch_basic_stats(RepositoryKey("acme", "widgets"))
        delta = await collector.fetch_since(repo, since)
    """

    def __init__(
        self,
        http: HTTPClient,
        token: str | None = None,
        lookback_months: int = 24,
        max_items: int = 1000,
        rate_limit_floor: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._http = http
        self._token = token
        self.lookback_months = lookback_months
        self.max_items = max_items
        self.rate_limit_floor = rate_limit_floor
        self._clock = clock

    @property
    def name(self) -> str:
        suffix = self._token[-4:] if self._token else "anon"
        return f"github:{suffix}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get(self, url: str, params: dict[str, Any] | None = None):
        return await self._http.get(url, params=params, headers=self._headers(), upstream=GITHUB)

    # ── Quota ───────────────────────────────────────────────────

    async def check_rate_limit(self) -> int:
        """
        Probe remaining core quota.

        Raises RateLimitExceeded when the remaining quota is below the floor,
        so a multi-page fetch is refused before it starts.
        """
        response = await self._get(f"{API_BASE}/rate_limit")
        data = response.json()
        core = (data.get("resources") or {}).get("core") or data.get("rate") or {}
        remaining = int(core.get("remaining", 0))
        reset_at = datetime.fromtimestamp(int(core.get("reset", 0)), tz=timezone.utc)

        if remaining < self.rate_limit_floor:
            raise RateLimitExceeded(
                f"GitHub quota low for {self.name}: {remaining} remaining",
                reset_at=max(reset_at, self._clock()),
            )
        return remaining

    # ── Pagination ──────────────────────────────────────────────

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any],
        keep: ItemFilter | None = None,
        stop: ItemFilter | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Follow ``Link: rel="next"`` pages.

        Args:
            path: API path under the repository
            params: Query parameters for the first page
            keep: Items failing this are skipped
            stop: First item matching this ends pagination (for ordered lists)
            limit: Maximum number of kept items
        """
        url: str | None = f"{API_BASE}{path}"
        query: dict[str, Any] | None = {**params, "per_page": PER_PAGE}
        items: list[dict[str, Any]] = []

        while url:
            response = await self._get(url, params=query)
            page = response.json()
            if not isinstance(page, list):
                raise UpstreamRequestError(f"Expected a list from {url}")

            for item in page:
                if stop is not None and stop(item):
                    return items
                if keep is not None and not keep(item):
                    continue
                items.append(item)
                if limit is not None and len(items) >= limit:
                    return items

            url = response.links.get("next", {}).get("url")
            query = None  # next link already carries the query
        return items

    def _lookback_cutoff(self) -> datetime:
        return subtract_months(self._clock(), self.lookback_months)

    @staticmethod
    def _map(items: list[dict[str, Any]], mapper: Callable[[dict[str, Any]], Any]) -> list[Any]:
        mapped = []
        for item in items:
            try:
                mapped.append(mapper(item))
            except (KeyError, ValidationError) as e:
                logger.warning("Skipping malformed GitHub item: %s", e)
        return mapped

    # ── Basic stats ─────────────────────────────────────────────

    async def fetch_basic_stats(self, repo: RepositoryKey) -> BasicStats:
        response = await self._get(f"{API_BASE}/repos/{repo}")
        data = response.json()
        return BasicStats(
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            is_archived=bool(data.get("archived")),
            last_commit_date=_parse_time(data.get("pushed_at")),
        )

    # ── Full fetches ────────────────────────────────────────────

    async def fetch_all_prs(self, repo: RepositoryKey) -> list[PullRequestActivity]:
        cutoff = self._lookback_cutoff()
        items = await self._paginate(
            f"/repos/{repo}/pulls",
            {"state": "all", "sort": "created", "direction": "desc"},
            stop=lambda pr: _parse_time(pr.get("created_at")) < cutoff,
            limit=self.max_items,
        )
        return self._map(items, pr_from_api)

    async def fetch_all_issues(self, repo: RepositoryKey) -> list[IssueActivity]:
        cutoff = self._lookback_cutoff()
        items = await self._paginate(
            f"/repos/{repo}/issues",
            {"state": "all", "sort": "created", "direction": "desc"},
            keep=lambda issue: "pull_request" not in issue,
            stop=lambda issue: _parse_time(issue.get("created_at")) < cutoff,
            limit=self.max_items,
        )
        return self._map(items, issue_from_api)

    async def fetch_all_commits(self, repo: RepositoryKey) -> list[CommitActivity]:
        items = await self._paginate(
            f"/repos/{repo}/commits",
            {"since": _iso(self._lookback_cutoff())},
            limit=self.max_items,
        )
        return self._map(items, commit_from_api)

    async def fetch_all_releases(self, repo: RepositoryKey) -> list[ReleaseActivity]:
        cutoff = self._lookback_cutoff()
        items = await self._paginate(
            f"/repos/{repo}/releases",
            {},
            keep=lambda r: _release_time(r) >= cutoff,
            limit=self.max_items,
        )
        return self._map(items, release_from_api)

    # ── Incremental fetches ─────────────────────────────────────

    async def fetch_prs_since(
        self, repo: RepositoryKey, since: datetime
    ) -> list[PullRequestActivity]:
        # Sorted by update time so state changes to older PRs are picked up
        items = await self._paginate(
            f"/repos/{repo}/pulls",
            {"state": "all", "sort": "updated", "direction": "desc"},
            stop=lambda pr: _parse_time(pr.get("updated_at") or pr.get("created_at")) <= since,
            limit=self.max_items,
        )
        return self._map(items, pr_from_api)

    async def fetch_issues_since(
        self, repo: RepositoryKey, since: datetime
    ) -> list[IssueActivity]:
        items = await self._paginate(
            f"/repos/{repo}/issues",
            {"state": "all", "since": _iso(since)},
            keep=lambda issue: "pull_request" not in issue,
            limit=self.max_items,
        )
        return self._map(items, issue_from_api)

    async def fetch_commits_since(
        self, repo: RepositoryKey, since: datetime
    ) -> list[CommitActivity]:
        items = await self._paginate(
            f"/repos/{repo}/commits",
            {"since": _iso(since)},
            limit=self.max_items,
        )
        return self._map(items, commit_from_api)

    async def fetch_releases_since(
        self, repo: RepositoryKey, since: datetime
    ) -> list[ReleaseActivity]:
        # The releases endpoint has no since filter
        items = await self._paginate(
            f"/repos/{repo}/releases",
            {},
            keep=lambda r: _release_time(r) > since,
            limit=self.max_items,
        )
        return self._map(items, release_from_api)

    # ── Composite ───────────────────────────────────────────────

    async def fetch_all(self, repo: RepositoryKey) -> GitHubDataset:
        """Full bounded fetch of all five GitHub sources."""
        await self.check_rate_limit()
        dataset = GitHubDataset(basic=await self.fetch_basic_stats(repo))
        dataset.prs = await self.fetch_all_prs(repo)
        dataset.issues = await self.fetch_all_issues(repo)
        dataset.commits = await self.fetch_all_commits(repo)
        dataset.releases = await self.fetch_all_releases(repo)
        logger.info("Fetched %d items for %s", dataset.total_items, repo)
        return dataset

    async def fetch_since(self, repo: RepositoryKey, since: datetime) -> ActivityDelta:
        """Items changed in ``(since, now]``."""
        await self.check_rate_limit()
        until = self._clock()
        return ActivityDelta(
            since=since,
            until=until,
            new_prs=await self.fetch_prs_since(repo, since),
            new_issues=await self.fetch_issues_since(repo, since),
            new_commits=await self.fetch_commits_since(repo, since),
            new_releases=await self.fetch_releases_since(repo, since),
        )


def _release_time(data: dict[str, Any]) -> datetime:
    moment = _parse_time(data.get("published_at") or data.get("created_at"))
    if moment is None:
        raise UpstreamRequestError(f"Release {data.get('id')} has no timestamp")
    return moment
