"""
Pipeline context.

Builds every collaborator of the collection pipeline once per process from
settings and owns the lifecycle of the shared Redis and HTTP clients. Entry
points (CLI commands, the API, the worker) create one context and pass its
members around instead of reaching for module-level singletons.
"""

from collections.abc import Callable
from datetime import datetime
from types import TracebackType

import structlog

from ris_collector.activity.schemas import utc_now
from ris_collector.collection.config import CollectionConfig
from ris_collector.collection.orchestrator import CollectionOrchestrator
from ris_collector.collection.scheduler import CollectionScheduler
from ris_collector.collectors.cdn import CdnCollector
from ris_collector.collectors.github import GitHubCollector
from ris_collector.collectors.http_client import HTTPClient, RetryConfig
from ris_collector.collectors.npm import NpmCollector
from ris_collector.collectors.ossf import ScorecardCollector
from ris_collector.collectors.pool import CollectorPool
from ris_collector.collectors.rate_limiter import RateLimiterRegistry
from ris_collector.config.settings import Settings, get_settings
from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.observability.metrics import get_metrics
from ris_collector.state.tracker import CollectionStateTracker
from ris_collector.storage.snapshots import SnapshotRepository
from ris_collector.storage.store import RedisStateStore
from ris_collector.webhooks.config import WebhookConfig
from ris_collector.webhooks.processor import WebhookProcessor
from ris_collector.webhooks.queue import WebhookQueue

logger = structlog.get_logger(__name__)


class PipelineContext:
    """
    One fully wired pipeline.

    Usage:
        async with PipelineContext() as ctx:
            result = await ctx.orchestrator.collect(RepositoryKey("acme", "widgets"))

    Tests inject a pre-built store and a fixed clock.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        collection_config: CollectionConfig | None = None,
        webhook_config: WebhookConfig | None = None,
        store: RedisStateStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self.collection_config = collection_config or CollectionConfig()
        self.webhook_config = webhook_config or WebhookConfig()
        self.clock = clock

        self.store = store or RedisStateStore(str(self.settings.redis_url))
        self.rate_limiters = RateLimiterRegistry.from_settings(self.settings)
        self.http = HTTPClient(
            retry_config=RetryConfig(
                max_retries=self.settings.max_http_retries,
                max_backoff_seconds=self.settings.max_backoff_seconds,
            ),
            timeout=self.settings.http_timeout_seconds,
            rate_limiters=self.rate_limiters,
            clock=clock,
        )

        self.tracker = CollectionStateTracker(
            self.store,
            backoff_cap_minutes=self.collection_config.retry_backoff_cap_minutes,
            clock=clock,
        )
        self.snapshots = SnapshotRepository(self.store)
        self.registry = LibraryRegistry(self.store)

        self.github_pool = self._build_github_pool()
        self.npm = NpmCollector(self.http, clock=clock)
        self.cdn = CdnCollector(self.http)
        self.scorecard = ScorecardCollector(self.http)

        self.orchestrator = CollectionOrchestrator(
            tracker=self.tracker,
            snapshots=self.snapshots,
            github=self.github_pool,
            npm=self.npm,
            cdn=self.cdn,
            scorecard=self.scorecard,
            config=self.collection_config,
            clock=clock,
        )
        self.scheduler = CollectionScheduler(
            orchestrator=self.orchestrator,
            tracker=self.tracker,
            registry=self.registry,
            config=self.collection_config,
            clock=clock,
        )
        self.webhook_queue = WebhookQueue(self.store, self.webhook_config, clock=clock)
        self.webhook_processor = WebhookProcessor(
            self.webhook_queue,
            self.snapshots,
            config=self.collection_config,
            clock=clock,
        )

    def _build_github_pool(self) -> CollectorPool[GitHubCollector]:
        def factory(token: str | None) -> GitHubCollector:
            return GitHubCollector(
                self.http,
                token,
                lookback_months=self.collection_config.lookback_months,
                max_items=self.collection_config.max_items_per_source,
                rate_limit_floor=self.collection_config.rate_limit_floor,
                clock=self.clock,
            )

        tokens = self.settings.github_token_list
        if not tokens:
            logger.warning("No GitHub token configured, using unauthenticated requests")
            pool = CollectorPool([factory(None)], clock=self.clock)
        else:
            pool = CollectorPool.from_tokens(tokens, factory, clock=self.clock)
        get_metrics().set_pool_available(pool.size)
        return pool

    async def start(self) -> None:
        await self.store.connect()
        await self.http.open()
        logger.info(
            "Pipeline context started",
            github_credentials=self.github_pool.size,
            environment=self.settings.environment,
        )

    async def close(self) -> None:
        await self.http.close()
        await self.store.close()
        logger.info("Pipeline context closed")

    async def __aenter__(self) -> "PipelineContext":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
