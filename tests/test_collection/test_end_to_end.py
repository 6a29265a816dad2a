"""Baseline collection followed by a push webhook for acme/widgets."""

import pytest

from ris_collector.webhooks.processor import WebhookProcessor
from ris_collector.webhooks.queue import WebhookQueue
from ris_collector.webhooks.schemas import build_event


def _push(*commits):
    return {
        "ref": "refs/heads/main",
        "repository": {"name": "widgets", "owner": {"login": "acme"}},
        "commits": [
            {"id": sha, "timestamp": timestamp, "message": "wip", "author": {"username": "dana"}}
            for sha, timestamp in commits
        ],
    }


class TestBaselineThenWebhook:
    """Collect once, then fold a push delivery into the cached snapshot."""

    @pytest.mark.asyncio
    async def test_push_extends_baseline(self, orchestrator, snapshots, store, clock, repo):
        result = await orchestrator.collect(repo)

        assert result.state.is_complete
        baseline = await snapshots.get_snapshot(repo)
        assert (len(baseline.prs), len(baseline.issues)) == (2, 0)
        assert (len(baseline.commits), len(baseline.releases)) == (5, 1)
        assert baseline.total_items == 7

        clock.advance(hours=2)
        queue = WebhookQueue(store, clock=clock)
        processor = WebhookProcessor(queue, snapshots, clock=clock)
        event = build_event(
            "push",
            "delivery-abc",
            _push(("new-1", "2026-03-01T13:00:00Z"), ("new-2", "2026-03-01T13:30:00Z")),
        )
        assert await queue.enqueue(event) is True

        assert await processor.process_all() == 1

        updated = await snapshots.get_snapshot(repo)
        assert len(updated.commits) == 7
        assert [c.sha for c in updated.commits[:2]] == ["new-2", "new-1"]
        assert updated.total_items == 9
        assert updated.last_updated_at > baseline.last_updated_at
        assert updated.is_complete is True

        # GitHub redelivery of the same event is dropped
        assert await queue.enqueue(event) is False

    @pytest.mark.asyncio
    async def test_webhook_before_baseline_is_dropped(self, snapshots, store, clock, repo):
        queue = WebhookQueue(store, clock=clock)
        processor = WebhookProcessor(queue, snapshots, clock=clock)
        await queue.enqueue(build_event("push", "d1", _push(("c1", "2026-03-01T10:00:00Z"))))

        await processor.process_all()

        assert await snapshots.get_snapshot(repo) is None
        assert await queue.is_processed("d1")
