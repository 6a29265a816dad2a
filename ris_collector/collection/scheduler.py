"""
Retry and refresh scheduling.

Both passes walk repositories one at a time and pace themselves with a
single-token bucket, so consecutive repositories are spaced by a fixed delay
and the shared upstream quotas are not drained by one batch.
"""

from collections import Counter
from collections.abc import Callable
from datetime import datetime

import structlog

from ris_collector.activity.schemas import utc_now
from ris_collector.collection.config import CollectionConfig
from ris_collector.collection.orchestrator import CollectionOrchestrator, CollectionResult
from ris_collector.collectors.rate_limiter import RateLimiter
from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.observability.metrics import get_metrics
from ris_collector.state.tracker import CollectionStateTracker

logger = structlog.get_logger(__name__)


def classify(result: CollectionResult) -> str:
    """Bucket a result as succeeded, partial or failed."""
    if result.success and not result.is_partial:
        return "succeeded"
    if result.is_partial:
        return "partial"
    return "failed"


class CollectionScheduler:
    """
    Periodic retry and refresh passes over many repositories.

    Usage:
        scheduler = CollectionScheduler(orchestrator, tracker, registry)
        summary = await scheduler.process_retries(limit=10)
        summary = await scheduler.refresh_all()
    """

    def __init__(
        self,
        orchestrator: CollectionOrchestrator,
        tracker: CollectionStateTracker,
        registry: LibraryRegistry,
        config: CollectionConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._orchestrator = orchestrator
        self._tracker = tracker
        self._registry = registry
        self._config = config or CollectionConfig()
        self._clock = clock
        self._metrics = get_metrics()

    async def _run_batch(
        self,
        repos: list[tuple[RepositoryKey, str | None]],
        pacer: RateLimiter | None,
        refresh: bool,
    ) -> Counter:
        counts: Counter = Counter(succeeded=0, partial=0, failed=0)
        for repo, library_name in repos:
            if pacer is not None:
                await pacer.acquire()
            try:
                result = await self._orchestrator.collect(
                    repo, library_name=library_name, resume=True, refresh=refresh
                )
            except Exception as e:
                counts["failed"] += 1
                logger.error("Collection crashed", repository=str(repo), error=str(e))
                continue

            outcome = classify(result)
            counts[outcome] += 1
            logger.info(
                "Repository processed",
                repository=str(repo),
                outcome=outcome,
                failed_sources=[s.value for s in result.failed_sources],
            )
        return counts

    async def process_retries(self, limit: int | None = None) -> dict[str, int]:
        """
        Resume repositories whose retry time has passed.

        Returns:
            {"attempted", "succeeded", "partial", "failed"}
        """
        limit = limit or self._config.retry_batch_size
        due = await self._tracker.get_repositories_needing_retry(limit, now=self._clock())
        if not due:
            logger.info("No repositories need retry")
            return {"attempted": 0, "succeeded": 0, "partial": 0, "failed": 0}

        logger.info("Processing retries", count=len(due))
        counts = await self._run_batch(
            [(repo, None) for repo in due],
            RateLimiter.pacer(self._config.retry_delay_seconds),
            refresh=False,
        )
        await self._update_gauges()

        summary = {"attempted": len(due), **counts}
        logger.info("Retry pass complete", **summary)
        return summary

    async def refresh_all(self) -> dict[str, int]:
        """
        Refresh every approved repository incrementally.

        Returns:
            {"total", "succeeded", "partial", "failed"}
        """
        approved = await self._registry.get_approved()
        if not approved:
            logger.info("No approved libraries to refresh")
            return {"total": 0, "succeeded": 0, "partial": 0, "failed": 0}

        logger.info("Refreshing approved libraries", count=len(approved))
        counts = await self._run_batch(
            [(library.key, library.library_name) for library in approved],
            RateLimiter.pacer(self._config.refresh_delay_seconds),
            refresh=True,
        )
        await self._update_gauges()

        summary = {"total": len(approved), **counts}
        logger.info("Refresh pass complete", **summary)
        return summary

    async def get_stats(self) -> dict[str, int]:
        collection = await self._tracker.get_collection_stats()
        return {
            "pending_retries": collection["pending_retries"],
            "total_failed": collection["total_failed"],
            "approved_count": await self._registry.count(),
        }

    async def _update_gauges(self) -> None:
        stats = await self._tracker.get_collection_stats()
        self._metrics.set_pending_retries(stats["pending_retries"])
