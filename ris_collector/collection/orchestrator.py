"""
Baseline/resume collection orchestrator.

Drives one repository through its eight sources:

1. Load state and snapshot. A complete repository with a snapshot is left
   alone unless the run is forced or a refresh.
2. Pick targets: not-yet-completed sources in resume mode, all eight
   otherwise.
3. Run the four independent groups concurrently (GitHub activity, npm, CDN,
   scorecard). The five GitHub sources run one after another through the
   credential pool. Each source is marked in progress, then completed or
   failed on its own; a failure never stops its siblings.
4. Fold everything that succeeded into one candidate snapshot through the
   merge engine, prune it, persist it and recompute derived metrics.

Sources without a completed fetch get a full bounded fetch; sources that
completed before fetch only what changed since their last collection.

Passes over the same repository never overlap within a process: a second
caller waits for the in-flight pass and then starts from what it saved.
"""

import asyncio
import time
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

import structlog

from ris_collector.activity.calculator import DerivedMetrics, compute
from ris_collector.activity.merge import default_window, merge, prune
from ris_collector.activity.schemas import ActivityDelta, ActivitySnapshot, utc_now
from ris_collector.collection.config import CollectionConfig
from ris_collector.collectors.cdn import CdnCollector
from ris_collector.collectors.errors import PackageNotFoundError
from ris_collector.collectors.github import GitHubCollector
from ris_collector.collectors.npm import NpmCollector, package_name_for
from ris_collector.collectors.ossf import ScorecardCollector
from ris_collector.collectors.pool import CollectorPool
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.observability.logging import collection_context
from ris_collector.observability.metrics import get_metrics
from ris_collector.state.schemas import (
    ALL_SOURCES,
    GITHUB_SOURCES,
    CollectionState,
    SourceName,
)
from ris_collector.state.tracker import CollectionStateTracker
from ris_collector.storage.snapshots import SnapshotRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Snapshot array filled by each GitHub list source
ITEM_FIELDS: dict[SourceName, str] = {
    SourceName.GITHUB_PRS: "prs",
    SourceName.GITHUB_ISSUES: "issues",
    SourceName.GITHUB_COMMITS: "commits",
    SourceName.GITHUB_RELEASES: "releases",
}


@dataclass
class CollectionResult:
    """Outcome of one orchestrator invocation."""

    success: bool
    owner: str
    repo: str
    is_partial: bool = False
    failed_sources: list[SourceName] = field(default_factory=list)
    error: str | None = None
    data_age_seconds: float | None = None
    metrics_calculated: bool = False
    skipped: bool = False
    state: CollectionState | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "owner": self.owner,
            "repo": self.repo,
            "is_partial": self.is_partial,
            "failed_sources": [s.value for s in self.failed_sources],
            "error": self.error,
            "data_age_seconds": self.data_age_seconds,
            "metrics_calculated": self.metrics_calculated,
            "skipped": self.skipped,
            "is_complete": self.state.is_complete if self.state else False,
        }


@dataclass
class _Harvest:
    """Everything fetched during one pass, folded into the snapshot at the end."""

    items: dict[str, list[Any]] = field(default_factory=dict)
    full_fetch: set[str] = field(default_factory=set)
    scalars: dict[str, Any] = field(default_factory=dict)
    succeeded: list[SourceName] = field(default_factory=list)
    failed: list[SourceName] = field(default_factory=list)


class CollectionOrchestrator:
    """
    Collects one repository across all sources.

    Usage:
        orchestrator = CollectionOrchestrator(tracker, snapshots, pool, npm, cdn, scorecard)
        result = await orchestrator.collect(RepositoryKey("acme", "widgets"))
    """

    def __init__(
        self,
        tracker: CollectionStateTracker,
        snapshots: SnapshotRepository,
        github: CollectorPool[GitHubCollector],
        npm: NpmCollector,
        cdn: CdnCollector,
        scorecard: ScorecardCollector,
        config: CollectionConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        package_resolver: Callable[[RepositoryKey], str | None] = package_name_for,
    ):
        self._tracker = tracker
        self._snapshots = snapshots
        self._github = github
        self._npm = npm
        self._cdn = cdn
        self._scorecard = scorecard
        self._config = config or CollectionConfig()
        self._clock = clock
        self._package_resolver = package_resolver
        self._metrics = get_metrics()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def collect(
        self,
        repo: RepositoryKey,
        library_name: str | None = None,
        force: bool = False,
        resume: bool = True,
        refresh: bool = False,
    ) -> CollectionResult:
        """
        Collect a repository.

        Args:
            repo: Repository to collect
            library_name: Display name for a new snapshot (defaults to repo name)
            force: Reinitialize state and re-fetch everything in full
            resume: Only target sources that are not completed
            refresh: Re-fetch all sources incrementally even when complete

        Returns:
            CollectionResult; ``success`` is False only when every targeted
            source failed or the pass crashed outside per-source handling
        """
        log = logger.bind(repository=str(repo))
        lock = self._repository_lock(repo)
        if lock.locked():
            log.info("Waiting for in-flight collection")
        async with lock:
            with collection_context(str(repo)):
                try:
                    return await self._collect(repo, library_name, force, resume, refresh, log)
                except Exception as e:
                    log.exception("Collection crashed", error=str(e))
                    self._metrics.record_collection_run("error")
                    return CollectionResult(
                        success=False,
                        owner=repo.owner,
                        repo=repo.name,
                        error=str(e),
                        state=await self._safe_state(repo),
                    )

    def _repository_lock(self, repo: RepositoryKey) -> asyncio.Lock:
        # Entries vanish once no pass holds or awaits the lock
        lock = self._locks.get(str(repo))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[str(repo)] = lock
        return lock

    async def get_data_age(self, repo: RepositoryKey) -> float | None:
        """Seconds since the snapshot was last updated, or None without one."""
        snapshot = await self._snapshots.get_snapshot(repo)
        if snapshot is None:
            return None
        return (self._clock() - snapshot.last_updated_at).total_seconds()

    async def get_derived_metrics(
        self, repo: RepositoryKey, months: int | None = None
    ) -> DerivedMetrics | None:
        """
        Derived metrics over a rolling window, or None when no snapshot exists.

        ``is_partial`` is set whenever the repository's collection is not
        complete, so callers can tell "partial data" from "no data yet".
        """
        snapshot = await self._snapshots.get_snapshot(repo)
        if snapshot is None:
            return None
        state = await self._tracker.get(repo)
        is_complete = state.is_complete if state is not None else snapshot.is_complete
        now = self._clock()
        window = default_window(months or self._config.metrics_window_months, now=now)
        return compute(snapshot, window, now=now, is_partial=not is_complete)

    # ── Pass ────────────────────────────────────────────────────

    async def _collect(
        self,
        repo: RepositoryKey,
        library_name: str | None,
        force: bool,
        resume: bool,
        refresh: bool,
        log: structlog.stdlib.BoundLogger,
    ) -> CollectionResult:
        prior_state = await self._tracker.get(repo)
        snapshot = await self._snapshots.get_snapshot(repo)

        if (
            not force
            and not refresh
            and prior_state is not None
            and prior_state.is_complete
            and snapshot is not None
        ):
            log.debug("Collection already complete")
            self._metrics.record_collection_run("skipped")
            return CollectionResult(
                success=True,
                owner=repo.owner,
                repo=repo.name,
                data_age_seconds=(self._clock() - snapshot.last_updated_at).total_seconds(),
                skipped=True,
                state=prior_state,
            )

        state = prior_state
        if state is not None and snapshot is None and state.completed_count > 0:
            # Completed sources have nothing to resume from without a snapshot
            log.warning("Snapshot missing for partially collected repository, restarting baseline")
            state = None
        if state is None or force:
            state = await self._tracker.initialize(repo)

        if resume and not refresh:
            targets = self._tracker.get_sources_needing_collection(state)
        else:
            targets = list(ALL_SOURCES)

        if not targets:
            return CollectionResult(
                success=True, owner=repo.owner, repo=repo.name, state=state
            )

        log.info(
            "Starting collection",
            targets=[t.value for t in targets],
            mode="baseline" if snapshot is None or force else "incremental",
        )

        since = self._since_resolver(None if force else snapshot, prior_state)
        harvest = _Harvest()

        outcomes = await asyncio.gather(
            self._github_group(repo, targets, since, harvest, log),
            self._npm_group(repo, targets, harvest, log),
            self._cdn_group(repo, targets, harvest, log),
            self._scorecard_group(repo, targets, harvest, log),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        final_state = await self._tracker.get(repo)
        is_complete = final_state.is_complete if final_state is not None else False
        failed = [s for s in targets if s in harvest.failed]
        success = len(failed) < len(targets)
        is_partial = success and bool(failed)

        metrics_calculated = False
        data_age: float | None = None
        if harvest.succeeded:
            candidate = self._build_snapshot(
                repo, snapshot, harvest, library_name, force, is_complete
            )
            await self._snapshots.save_snapshot(candidate)
            await self._save_metrics(candidate, is_complete, log)
            metrics_calculated = True
            data_age = 0.0
        elif snapshot is not None:
            data_age = (self._clock() - snapshot.last_updated_at).total_seconds()

        outcome_label = "complete" if is_complete else ("partial" if success else "failed")
        self._metrics.record_collection_run(outcome_label)
        log.info(
            "Collection finished",
            outcome=outcome_label,
            succeeded=len(harvest.succeeded),
            failed=[s.value for s in failed],
        )

        return CollectionResult(
            success=success,
            owner=repo.owner,
            repo=repo.name,
            is_partial=is_partial,
            failed_sources=failed,
            error=None if success else "All targeted sources failed",
            data_age_seconds=data_age,
            metrics_calculated=metrics_calculated,
            state=final_state,
        )

    def _since_resolver(
        self,
        snapshot: ActivitySnapshot | None,
        prior_state: CollectionState | None,
    ) -> Callable[[SourceName], datetime | None]:
        """
        Incremental lower bound per source, or None for a full fetch.

        A source fetches incrementally only when a snapshot exists and the
        source has completed before. The cursor is the earlier of the
        source's last collection time and the snapshot's update time, since
        a source can be marked completed by a pass whose snapshot was never
        saved. Without any state record the snapshot's update time is used.
        Passing no snapshot forces full fetches.
        """

        def since(source: SourceName) -> datetime | None:
            if snapshot is None:
                return None
            if prior_state is None:
                return snapshot.last_updated_at
            collected_at = prior_state.source(source).collected_at
            if collected_at is None:
                return None
            return min(collected_at, snapshot.last_updated_at)

        return since

    # ── Per-source execution ────────────────────────────────────

    async def _run_source(
        self,
        repo: RepositoryKey,
        source: SourceName,
        fetch: Callable[[], Awaitable[T]],
        fold: Callable[[T], int | None],
        harvest: _Harvest,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        # Collector and HTTP retry logs inside the fetch carry the source too
        with collection_context(str(repo), source=source.value):
            await self._tracker.mark_in_progress(repo, source)
            started = time.monotonic()
            try:
                value = await fetch()
            except Exception as e:
                latency = time.monotonic() - started
                error = f"{type(e).__name__}: {e}"
                harvest.failed.append(source)
                self._metrics.record_source_collection(source.value, "failed", latency)
                log.warning("Source failed", error=error)
                await self._tracker.mark_failed(repo, source, error)
                return

            items = fold(value)
            harvest.succeeded.append(source)
            self._metrics.record_source_collection(
                source.value, "completed", time.monotonic() - started
            )
            log.debug("Source completed", items=items)
            await self._tracker.mark_completed(repo, source, items)

    async def _github_group(
        self,
        repo: RepositoryKey,
        targets: list[SourceName],
        since: Callable[[SourceName], datetime | None],
        harvest: _Harvest,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        for source in GITHUB_SOURCES:
            if source not in targets:
                continue

            if source == SourceName.GITHUB_BASIC:
                await self._run_source(
                    repo,
                    source,
                    lambda: self._github.run(lambda c: c.fetch_basic_stats(repo)),
                    lambda stats: self._fold_scalars(
                        harvest,
                        stars=stats.stars,
                        forks=stats.forks,
                        is_archived=stats.is_archived,
                        last_commit_date=stats.last_commit_date,
                    ),
                    harvest,
                    log,
                )
                continue

            source_since = since(source)
            await self._run_source(
                repo,
                source,
                self._github_fetch(repo, source, source_since),
                self._item_folder(harvest, ITEM_FIELDS[source], full=source_since is None),
                harvest,
                log,
            )

    @staticmethod
    def _item_folder(
        harvest: _Harvest, field_name: str, full: bool
    ) -> Callable[[list[Any]], int]:
        def fold(items: list[Any]) -> int:
            harvest.items[field_name] = items
            if full:
                harvest.full_fetch.add(field_name)
            return len(items)

        return fold

    def _github_fetch(
        self, repo: RepositoryKey, source: SourceName, since: datetime | None
    ) -> Callable[[], Awaitable[list[Any]]]:
        kind = ITEM_FIELDS[source]

        async def operation(collector: GitHubCollector) -> list[Any]:
            # Multi-page fetch: refuse up front when the quota is low
            await collector.check_rate_limit()
            if since is None:
                return await getattr(collector, f"fetch_all_{kind}")(repo)
            return await getattr(collector, f"fetch_{kind}_since")(repo, since)

        return lambda: self._github.run(operation)

    def _package(self, repo: RepositoryKey) -> str:
        package = self._package_resolver(repo)
        if package is None:
            raise PackageNotFoundError(f"No npm package published from {repo}")
        return package

    async def _npm_group(
        self,
        repo: RepositoryKey,
        targets: list[SourceName],
        harvest: _Harvest,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        if SourceName.NPM_METRICS not in targets:
            return

        async def fetch():
            return await self._npm.fetch_metrics(self._package(repo))

        await self._run_source(
            repo,
            SourceName.NPM_METRICS,
            fetch,
            lambda npm: self._fold_scalars(
                harvest,
                npm_downloads_12mo=npm.downloads_12mo,
                npm_dependents=npm.dependents_count,
                typescript_support=npm.typescript_support,
            ),
            harvest,
            log,
        )

    async def _cdn_group(
        self,
        repo: RepositoryKey,
        targets: list[SourceName],
        harvest: _Harvest,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        if SourceName.CDN_METRICS not in targets:
            return

        async def fetch():
            return await self._cdn.fetch_metrics(self._package(repo))

        await self._run_source(
            repo,
            SourceName.CDN_METRICS,
            fetch,
            lambda cdn: self._fold_scalars(harvest, cdn_hits_12mo=cdn.hits_12mo),
            harvest,
            log,
        )

    async def _scorecard_group(
        self,
        repo: RepositoryKey,
        targets: list[SourceName],
        harvest: _Harvest,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        if SourceName.OSSF_METRICS not in targets:
            return

        await self._run_source(
            repo,
            SourceName.OSSF_METRICS,
            lambda: self._scorecard.fetch_metrics(repo),
            lambda card: self._fold_scalars(harvest, ossf_score=card.normalized_score),
            harvest,
            log,
        )

    @staticmethod
    def _fold_scalars(harvest: _Harvest, **values: Any) -> None:
        harvest.scalars.update(values)

    # ── Snapshot assembly ───────────────────────────────────────

    def _build_snapshot(
        self,
        repo: RepositoryKey,
        cached: ActivitySnapshot | None,
        harvest: _Harvest,
        library_name: str | None,
        force: bool,
        is_complete: bool,
    ) -> ActivitySnapshot:
        now = self._clock()
        base = cached or ActivitySnapshot.empty(repo, library_name, now)

        # A forced pass replaces history for every list it fetched in full
        cleared: dict[str, Any] = {
            name: [] for name in harvest.full_fetch if force and cached is not None
        }
        if library_name:
            cleared["library_name"] = library_name
        if cleared:
            base = base.model_copy(update=cleared)

        delta = ActivityDelta(
            since=base.last_updated_at,
            until=now,
            new_prs=harvest.items.get("prs", []),
            new_issues=harvest.items.get("issues", []),
            new_commits=harvest.items.get("commits", []),
            new_releases=harvest.items.get("releases", []),
        )
        scalars = base.scalars().model_copy(update=harvest.scalars)

        merged = merge(base, delta, scalars, now=now)
        pruned = prune(merged, self._config.retention_years, now=now)
        return pruned.model_copy(
            update={
                "is_complete": is_complete,
                "eligibility": cached.eligibility if cached is not None else None,
            }
        )

    async def _save_metrics(
        self,
        snapshot: ActivitySnapshot,
        is_complete: bool,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        now = self._clock()
        window = default_window(self._config.metrics_window_months, now=now)
        await self._snapshots.save_metrics(
            compute(snapshot, window, now=now, is_partial=not is_complete)
        )
        log.debug("Derived metrics updated")

    async def _safe_state(self, repo: RepositoryKey) -> CollectionState | None:
        try:
            return await self._tracker.get(repo)
        except Exception as e:
            logger.warning("Could not load state after crash", repository=str(repo), error=str(e))
            return None
