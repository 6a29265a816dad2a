"""Tests for PipelineContext wiring."""

from unittest.mock import AsyncMock

import pytest

from ris_collector.config.settings import Settings
from ris_collector.context import PipelineContext


class TestPipelineContext:
    def test_pool_has_one_collector_per_token(self, test_settings, store, clock):
        context = PipelineContext(settings=test_settings, store=store, clock=clock)

        assert context.github_pool.size == 2
        assert context.github_pool.available_count == 2

    def test_unauthenticated_pool(self, store, clock):
        settings = Settings(github_token=None, github_tokens=None)

        context = PipelineContext(settings=settings, store=store, clock=clock)

        assert context.github_pool.size == 1

    def test_collaborators_share_store(self, test_settings, store, clock):
        context = PipelineContext(settings=test_settings, store=store, clock=clock)

        assert context.store is store
        assert context.tracker._store is store
        assert context.snapshots._store is store

    @pytest.mark.asyncio
    async def test_async_context_manager(self, test_settings, store, clock, monkeypatch):
        monkeypatch.setattr(store, "connect", AsyncMock())
        monkeypatch.setattr(store, "close", AsyncMock())

        async with PipelineContext(settings=test_settings, store=store, clock=clock) as context:
            store.connect.assert_awaited_once()
            assert context.http is not None

        store.close.assert_awaited_once()
