"""
Redis-backed FIFO of webhook events plus installation tracking.

Events are appended with RPUSH and consumed with LPOP. Delivery ids that
were processed successfully go into a dedup set with a TTL so GitHub
redeliveries are dropped at enqueue time. Processing errors are kept in a
capped list for inspection.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ris_collector.activity.schemas import utc_now
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.storage import keys
from ris_collector.storage.store import RedisStateStore
from ris_collector.webhooks.config import WebhookConfig
from ris_collector.webhooks.schemas import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookQueue:
    """
    Webhook event queue.

    Usage:
        queue = WebhookQueue(store)
        if await queue.enqueue(event):
            ...
        event = await queue.dequeue()
    """

    def __init__(
        self,
        store: RedisStateStore,
        config: WebhookConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._config = config or WebhookConfig()
        self._clock = clock

    # ── Events ──────────────────────────────────────────────────

    async def enqueue(self, event: WebhookEvent) -> bool:
        """
        Append an event unless its delivery id was already processed.

        Returns:
            True if queued, False for a duplicate delivery
        """
        if await self.is_processed(event.event_id):
            logger.info("Skipping duplicate webhook delivery %s", event.event_id)
            return False
        await self._store.rpush(keys.WEBHOOK_QUEUE, event.model_dump_json())
        logger.debug("Queued %s event %s for %s", event.type.value, event.event_id, event.key)
        return True

    async def dequeue(self) -> WebhookEvent | None:
        """
        Pop the oldest event.

        Entries that cannot be decoded are logged, recorded as errors and
        skipped. Returns None once the queue is empty.
        """
        while True:
            raw = await self._store.lpop(keys.WEBHOOK_QUEUE)
            if raw is None:
                return None
            try:
                return WebhookEvent.model_validate_json(raw)
            except ValidationError as e:
                logger.error("Dropping undecodable webhook entry: %s", e)
                await self.record_error(None, "Undecodable queue entry", raw[:200])

    async def queue_length(self) -> int:
        return await self._store.llen(keys.WEBHOOK_QUEUE)

    async def is_processed(self, event_id: str) -> bool:
        return await self._store.sismember(keys.WEBHOOK_PROCESSED, event_id)

    async def mark_processed(self, event_id: str) -> None:
        # TTL applies to the whole set and is refreshed on every insert
        await self._store.sadd(keys.WEBHOOK_PROCESSED, event_id)
        await self._store.expire(keys.WEBHOOK_PROCESSED, self._config.processed_ttl_seconds)

    # ── Error history ───────────────────────────────────────────

    async def record_error(
        self,
        event_id: str | None,
        error: str,
        details: Any = None,
    ) -> None:
        entry = {
            "event_id": event_id,
            "error": error,
            "details": details,
            "timestamp": self._clock().isoformat(),
        }
        await self._store.lpush(keys.WEBHOOK_ERRORS, json.dumps(entry, default=str))
        await self._store.ltrim(keys.WEBHOOK_ERRORS, 0, self._config.error_history_size - 1)

    async def get_errors(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent processing errors, newest first."""
        raw = await self._store.lrange(keys.WEBHOOK_ERRORS, 0, limit - 1)
        return [json.loads(entry) for entry in raw]

    async def clear(self) -> None:
        await self._store.delete(keys.WEBHOOK_QUEUE, keys.WEBHOOK_PROCESSED, keys.WEBHOOK_ERRORS)
        logger.info("Cleared webhook queue, processed set and error history")

    # ── Installations ───────────────────────────────────────────

    async def track_installation(self, repo: RepositoryKey, installation_id: int) -> None:
        await self._store.hset(keys.INSTALLATIONS, str(repo), str(installation_id))
        logger.info("Tracking installation %d for %s", installation_id, repo)

    async def remove_installation(self, repo: RepositoryKey) -> None:
        await self._store.hdel(keys.INSTALLATIONS, str(repo))
        logger.info("Removed installation for %s", repo)

    async def is_installed(self, repo: RepositoryKey) -> bool:
        return await self._store.hexists(keys.INSTALLATIONS, str(repo))

    async def get_installation_id(self, repo: RepositoryKey) -> int | None:
        raw = await self._store.hget(keys.INSTALLATIONS, str(repo))
        return int(raw) if raw is not None else None

    async def get_installations(self) -> dict[str, int]:
        return {
            repo: int(installation_id)
            for repo, installation_id in (await self._store.hgetall(keys.INSTALLATIONS)).items()
        }
