"""
Prometheus metrics for monitoring the collection pipeline.

Defines and exposes metrics for:
- Per-source collection outcomes and latency
- Whole-repository collection runs
- Upstream rate limit hits and credential pool availability
- Webhook event processing
- Retry backlog

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from ris_collector.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for source fetch latency (in seconds); full-history fetches are slow
LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the ris-collector pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_source_collection("github_prs", "completed", latency=1.2)
        metrics.record_rate_limit_hit("github")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.source_collections = Counter(
            "ris_source_collections_total",
            "Total per-source collection attempts",
            ["source", "status"],  # status: completed, failed
        )

        self.collection_runs = Counter(
            "ris_collection_runs_total",
            "Total repository collection passes",
            ["outcome"],  # complete, partial, failed, skipped
        )

        self.collection_latency = Histogram(
            "ris_collection_latency_seconds",
            "Time to collect a single source",
            ["source"],
            buckets=LATENCY_BUCKETS,
        )

        self.rate_limit_hits = Counter(
            "ris_rate_limit_hits_total",
            "Total upstream rate limit responses",
            ["upstream"],
        )

        self.webhook_events = Counter(
            "ris_webhook_events_total",
            "Total webhook events handled",
            ["type", "outcome"],  # outcome: queued, duplicate, applied, dropped, error
        )

        self.pending_retries = Gauge(
            "ris_pending_retries",
            "Repositories scheduled for collection retry",
        )

        self.pool_available_credentials = Gauge(
            "ris_pool_available_credentials",
            "Credentials in the rotation pool not currently rate limited",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_source_collection(
        self,
        source: str,
        status: str,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one source fetch.

        Args:
            source: Source name (e.g. github_prs)
            status: completed or failed
            latency: Optional fetch duration in seconds
        """
        self.source_collections.labels(source=source, status=status).inc()
        if latency is not None:
            self.collection_latency.labels(source=source).observe(latency)

    def record_collection_run(self, outcome: str) -> None:
        """Record a repository collection pass outcome."""
        self.collection_runs.labels(outcome=outcome).inc()

    def record_rate_limit_hit(self, upstream: str) -> None:
        """Record an upstream rate limit response."""
        self.rate_limit_hits.labels(upstream=upstream).inc()

    def record_webhook_event(self, event_type: str, outcome: str) -> None:
        """Record a webhook event transition."""
        self.webhook_events.labels(type=event_type, outcome=outcome).inc()

    def set_pending_retries(self, count: int) -> None:
        """Set retry backlog gauge."""
        self.pending_retries.set(count)

    def set_pool_available(self, count: int) -> None:
        """Set available credential gauge."""
        self.pool_available_credentials.set(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
