"""
Scheduler service - long-running worker for periodic pipeline passes.

Runs three independent loops:
- retry pass every ``retry_interval_minutes``
- full refresh every ``refresh_interval_days`` (first run after one interval)
- webhook drain every ``drain_interval_seconds``

A failing pass is logged and the loop continues on its next tick. stop()
cancels the loops; a pass in flight is abandoned and its sources stay
in_progress, which the next resume treats as retryable.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ris_collector.collection.config import CollectionConfig
from ris_collector.collection.scheduler import CollectionScheduler
from ris_collector.webhooks.config import WebhookConfig
from ris_collector.webhooks.processor import WebhookProcessor

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400


class SchedulerService:
    """
    Periodic retry, refresh and webhook-drain worker.

    Usage:
        service = SchedulerService(ctx.scheduler, ctx.webhook_processor)
        await service.start()  # Runs until stopped
    """

    def __init__(
        self,
        scheduler: CollectionScheduler,
        webhook_processor: WebhookProcessor,
        collection_config: CollectionConfig | None = None,
        webhook_config: WebhookConfig | None = None,
    ):
        self._scheduler = scheduler
        self._webhook_processor = webhook_processor
        self._collection_config = collection_config or CollectionConfig()
        self._webhook_config = webhook_config or WebhookConfig()
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._last_runs: dict[str, float] = {}

    async def start(self) -> None:
        """Run all loops until stop() is called."""
        self._running = True
        logger.info(
            "Starting scheduler service",
            retry_interval_minutes=self._collection_config.retry_interval_minutes,
            refresh_interval_days=self._collection_config.refresh_interval_days,
            drain_interval_seconds=self._webhook_config.drain_interval_seconds,
        )

        refresh_interval = self._collection_config.refresh_interval_days * SECONDS_PER_DAY
        self._tasks = [
            asyncio.create_task(
                self._run_periodic(
                    "retry",
                    self._collection_config.retry_interval_minutes * 60,
                    self._scheduler.process_retries,
                ),
                name="scheduler_retry",
            ),
            asyncio.create_task(
                self._run_periodic(
                    "refresh",
                    refresh_interval,
                    self._scheduler.refresh_all,
                    initial_delay=refresh_interval,
                ),
                name="scheduler_refresh",
            ),
            asyncio.create_task(
                self._run_periodic(
                    "webhooks",
                    self._webhook_config.drain_interval_seconds,
                    self._drain_webhooks,
                ),
                name="scheduler_webhooks",
            ),
        ]

        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info("Scheduler service cancelled")
        finally:
            self._tasks.clear()
            self._running = False
            logger.info("Scheduler service stopped")

    async def stop(self) -> None:
        """Stop the loops."""
        logger.info("Stopping scheduler service")
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _drain_webhooks(self) -> int:
        return await self._webhook_processor.process_all(
            self._webhook_config.max_events_per_drain
        )

    async def _run_periodic(
        self,
        name: str,
        interval_seconds: float,
        job: Callable[[], Awaitable[Any]],
        initial_delay: float = 0.0,
    ) -> None:
        if initial_delay:
            await asyncio.sleep(initial_delay)

        while self._running:
            start_time = time.monotonic()
            try:
                outcome = await job()
                logger.debug(
                    "Scheduled pass complete",
                    job=name,
                    outcome=outcome,
                    elapsed_seconds=round(time.monotonic() - start_time, 2),
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduled pass failed", job=name, error=str(e))
            self._last_runs[name] = time.time()

            await asyncio.sleep(interval_seconds)

    @property
    def is_running(self) -> bool:
        return self._running

    def health(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_tasks": len([t for t in self._tasks if not t.done()]),
            "last_runs": dict(self._last_runs),
        }
