"""Tests for the long-running scheduler service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ris_collector.collection.config import CollectionConfig
from ris_collector.services.scheduler_service import SchedulerService
from ris_collector.webhooks.config import WebhookConfig


@pytest.fixture
def scheduler():
    mock = AsyncMock()
    mock.process_retries.return_value = {"attempted": 0, "succeeded": 0, "partial": 0, "failed": 0}
    mock.refresh_all.return_value = {"total": 0, "succeeded": 0, "partial": 0, "failed": 0}
    return mock


@pytest.fixture
def processor():
    mock = AsyncMock()
    mock.process_all.return_value = 0
    return mock


@pytest.fixture
def service(scheduler, processor):
    return SchedulerService(
        scheduler,
        processor,
        collection_config=CollectionConfig(retry_interval_minutes=5, refresh_interval_days=1),
        webhook_config=WebhookConfig(drain_interval_seconds=10, max_events_per_drain=25),
    )


@pytest.fixture
def sleeps(monkeypatch, service):
    """Record sleeps instead of waiting; stop the service after three."""
    recorded: list[float] = []

    async def fake_sleep(seconds):
        recorded.append(seconds)
        if len(recorded) >= 3:
            service._running = False

    monkeypatch.setattr("ris_collector.services.scheduler_service.asyncio.sleep", fake_sleep)
    return recorded


class TestPeriodicLoop:
    """Tests for a single periodic loop."""

    @pytest.mark.asyncio
    async def test_failing_pass_does_not_stop_loop(self, service, sleeps):
        job = AsyncMock(side_effect=[1, RuntimeError("redis down"), 3])
        service._running = True

        await service._run_periodic("retry", 60, job)

        assert job.await_count == 3
        assert sleeps == [60, 60, 60]
        assert "retry" in service.health()["last_runs"]

    @pytest.mark.asyncio
    async def test_initial_delay(self, service, sleeps):
        job = AsyncMock(return_value=None)
        service._running = True

        await service._run_periodic("refresh", 86400, job, initial_delay=86400)

        assert sleeps[0] == 86400
        assert job.await_count == 2

    @pytest.mark.asyncio
    async def test_stopped_loop_never_runs(self, service, sleeps):
        job = AsyncMock()

        await service._run_periodic("webhooks", 10, job)

        job.assert_not_awaited()


class TestServiceLifecycle:
    """Tests for start() and stop()."""

    @pytest.mark.asyncio
    async def test_start_runs_retry_and_drain_immediately(self, service, scheduler, processor):
        task = asyncio.create_task(service.start())
        for _ in range(5):
            await asyncio.sleep(0)

        assert service.is_running
        assert service.health()["active_tasks"] == 3

        await service.stop()
        await task

        scheduler.process_retries.assert_awaited_once()
        processor.process_all.assert_awaited_once_with(25)
        # Refresh waits a full interval before its first pass
        scheduler.refresh_all.assert_not_awaited()
        assert not service.is_running
        assert service.health()["active_tasks"] == 0

    @pytest.mark.asyncio
    async def test_stop_before_start(self, service):
        await service.stop()

        assert not service.is_running
