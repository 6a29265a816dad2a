"""
Webhook event processor.

Applies queued events directly to cached snapshots between full collection
passes. Webhooks never originate a snapshot: events for repositories without
one are dropped. Failures are logged and recorded but the event is not
re-queued; the next scheduled refresh reconciles anything missed.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from ris_collector.activity.calculator import compute
from ris_collector.activity.merge import default_window, merge_items
from ris_collector.activity.schemas import ActivitySnapshot, utc_now
from ris_collector.collection.config import CollectionConfig
from ris_collector.observability.metrics import get_metrics
from ris_collector.storage.snapshots import SnapshotRepository
from ris_collector.webhooks.queue import WebhookQueue
from ris_collector.webhooks.schemas import (
    IssuesPayload,
    PullRequestPayload,
    PushPayload,
    ReleasePayload,
    WebhookEvent,
    decode_payload,
)

logger = structlog.get_logger(__name__)


class WebhookProcessor:
    """
    Drains the webhook queue into cached snapshots.

    Usage:
        processor = WebhookProcessor(queue, snapshots)
        processed = await processor.process_all(max_events=100)
    """

    def __init__(
        self,
        queue: WebhookQueue,
        snapshots: SnapshotRepository,
        config: CollectionConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._queue = queue
        self._snapshots = snapshots
        self._config = config or CollectionConfig()
        self._clock = clock
        self._metrics = get_metrics()

    async def process_next(self) -> bool:
        """
        Process one event.

        Returns:
            False when the queue is empty, True otherwise (whatever the outcome)
        """
        event = await self._queue.dequeue()
        if event is None:
            return False

        log = logger.bind(
            event_id=event.event_id,
            event_type=event.type.value,
            repository=str(event.key),
        )
        try:
            outcome = await self.apply(event)
        except Exception as e:
            log.error(
                "Webhook processing failed",
                error=str(e),
                payload=event.payload_excerpt(),
            )
            await self._queue.record_error(event.event_id, str(e), event.payload_excerpt())
            self._metrics.record_webhook_event(event.type.value, "error")
            return True

        await self._queue.mark_processed(event.event_id)
        self._metrics.record_webhook_event(event.type.value, outcome)
        log.info("Webhook processed", outcome=outcome)
        return True

    async def process_all(self, max_events: int = 100) -> int:
        """Drain up to ``max_events`` events. Returns how many were taken."""
        processed = 0
        while processed < max_events:
            if not await self.process_next():
                break
            processed += 1
        if processed:
            logger.info("Webhook drain complete", processed=processed)
        return processed

    async def apply(self, event: WebhookEvent) -> str:
        """
        Apply one event to its repository's snapshot.

        Returns:
            "applied" when the snapshot changed, "dropped" when there was no
            snapshot or the event carries nothing to record

        Raises:
            InvalidWebhookPayload: Payload does not match its event type
        """
        snapshot = await self._snapshots.get_snapshot(event.key)
        if snapshot is None:
            logger.info(
                "No snapshot yet, dropping webhook",
                event_id=event.event_id,
                repository=str(event.key),
            )
            return "dropped"

        updated = self._mutate(snapshot, event)
        if updated is None:
            return "dropped"

        now = self._clock()
        updated.last_updated_at = now
        updated.collection_window_end = now
        await self._snapshots.save_snapshot(updated)

        window = default_window(self._config.metrics_window_months, now=now)
        await self._snapshots.save_metrics(
            compute(updated, window, now=now, is_partial=not updated.is_complete)
        )
        return "applied"

    def _mutate(self, snapshot: ActivitySnapshot, event: WebhookEvent) -> ActivitySnapshot | None:
        payload = decode_payload(event.type, event.payload)
        updated = snapshot.model_copy(deep=True)

        if isinstance(payload, PushPayload):
            if not payload.commits:
                return None
            updated.commits = merge_items(
                updated.commits, (commit.to_activity() for commit in payload.commits)
            )
        elif isinstance(payload, PullRequestPayload):
            updated.prs = merge_items(updated.prs, [payload.pull_request.to_activity()])
        elif isinstance(payload, IssuesPayload):
            # Pull requests also surface through the issues API
            if payload.issue.is_pull_request:
                return None
            updated.issues = merge_items(updated.issues, [payload.issue.to_activity()])
        elif isinstance(payload, ReleasePayload):
            if payload.action != "published":
                return None
            updated.releases = merge_items(updated.releases, [payload.release.to_activity()])
        return updated
