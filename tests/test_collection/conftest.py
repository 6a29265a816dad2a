"""Shared fixtures for collection pipeline tests."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from ris_collector.collection.config import CollectionConfig
from ris_collector.collection.orchestrator import CollectionOrchestrator
from ris_collector.collectors.cdn import CdnMetrics
from ris_collector.collectors.github import BasicStats
from ris_collector.collectors.npm import NpmMetrics
from ris_collector.collectors.ossf import ScorecardMetrics
from ris_collector.collectors.pool import CollectorPool
from ris_collector.state.tracker import CollectionStateTracker
from ris_collector.storage.snapshots import SnapshotRepository


def _fake_github(clock, make_pr, make_commit, make_release):
    """GitHub collector double serving 2 PRs, 0 issues, 5 commits and 1 release."""
    now = clock.now
    collector = AsyncMock()
    collector.check_rate_limit.return_value = 5000
    collector.fetch_basic_stats.return_value = BasicStats(
        stars=1500, forks=120, is_archived=False, last_commit_date=now - timedelta(days=1)
    )
    collector.fetch_all_prs.return_value = [
        make_pr(101, now - timedelta(days=3), merged=True, additions=40, author="alice"),
        make_pr(102, now - timedelta(days=10), author="bob"),
    ]
    collector.fetch_all_issues.return_value = []
    collector.fetch_all_commits.return_value = [
        make_commit(f"sha{i}", now - timedelta(days=i + 1), author="alice") for i in range(5)
    ]
    collector.fetch_all_releases.return_value = [
        make_release(201, now - timedelta(days=20), tag_name="v1.0.0")
    ]
    collector.fetch_prs_since.return_value = []
    collector.fetch_issues_since.return_value = []
    collector.fetch_commits_since.return_value = []
    collector.fetch_releases_since.return_value = []
    return collector


@pytest.fixture
def github(clock, make_pr, make_commit, make_release):
    return _fake_github(clock, make_pr, make_commit, make_release)


@pytest.fixture
def npm():
    collector = AsyncMock()
    collector.fetch_metrics.return_value = NpmMetrics(
        package_name="widgets",
        downloads_12mo=250_000,
        downloads_last_month=20_000,
        dependents_count=35,
        typescript_support=True,
        latest_version="1.0.0",
        license="MIT",
    )
    return collector


@pytest.fixture
def cdn():
    collector = AsyncMock()
    collector.fetch_metrics.return_value = CdnMetrics(hits_12mo=9000, hits_last_month=800)
    return collector


@pytest.fixture
def scorecard():
    collector = AsyncMock()
    collector.fetch_metrics.return_value = ScorecardMetrics(overall_score=6.5)
    return collector


@pytest.fixture
def collection_config():
    return CollectionConfig(retry_delay_seconds=0, refresh_delay_seconds=0)


@pytest.fixture
def tracker(store, clock, collection_config):
    return CollectionStateTracker(
        store, backoff_cap_minutes=collection_config.retry_backoff_cap_minutes, clock=clock
    )


@pytest.fixture
def snapshots(store):
    return SnapshotRepository(store)


@pytest.fixture
def orchestrator(tracker, snapshots, github, npm, cdn, scorecard, collection_config, clock):
    return CollectionOrchestrator(
        tracker=tracker,
        snapshots=snapshots,
        github=CollectorPool([github], clock=clock),
        npm=npm,
        cdn=cdn,
        scorecard=scorecard,
        config=collection_config,
        clock=clock,
        package_resolver=lambda repo: repo.name,
    )
