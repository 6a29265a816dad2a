"""Tests for the snapshot merge engine."""

from datetime import datetime, timedelta, timezone

import pytest

from ris_collector.activity.merge import (
    filter_by_window,
    merge,
    merge_items,
    prune,
    retention_cutoff,
)
from ris_collector.activity.schemas import (
    ActivityDelta,
    EligibilityInfo,
    RepositoryScalars,
    TimeWindow,
    subtract_months,
)


class TestSubtractMonths:
    """Tests for calendar month arithmetic."""

    def test_simple(self):
        value = datetime(2026, 6, 15, tzinfo=timezone.utc)
        assert subtract_months(value, 3) == datetime(2026, 3, 15, tzinfo=timezone.utc)

    def test_crosses_year(self):
        value = datetime(2026, 2, 10, tzinfo=timezone.utc)
        assert subtract_months(value, 36) == datetime(2023, 2, 10, tzinfo=timezone.utc)

    def test_clamps_day(self):
        """Mar 31 minus one month lands on the last day of February."""
        value = datetime(2026, 3, 31, tzinfo=timezone.utc)
        assert subtract_months(value, 1) == datetime(2026, 2, 28, tzinfo=timezone.utc)

    def test_clamps_leap_day(self):
        value = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert subtract_months(value, 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)


class TestMergeItems:
    """Tests for keyed overlay of item arrays."""

    def test_incoming_replaces_existing_by_key(self, make_pr, now):
        old = make_pr(1, now - timedelta(days=3), title="old title")
        new = make_pr(1, now - timedelta(days=3), title="new title", merged=True)

        merged = merge_items([old], [new])

        assert len(merged) == 1
        assert merged[0].title == "new title"
        assert merged[0].merged is True

    def test_sorted_newest_first(self, make_commit, now):
        commits = [
            make_commit("a", now - timedelta(days=5)),
            make_commit("b", now - timedelta(days=1)),
            make_commit("c", now - timedelta(days=3)),
        ]

        merged = merge_items([], commits)

        assert [c.sha for c in merged] == ["b", "c", "a"]

    def test_timestamp_ties_ordered_deterministically(self, make_commit, now):
        same = now - timedelta(days=1)
        first = merge_items([make_commit("x", same)], [make_commit("y", same)])
        second = merge_items([make_commit("y", same)], [make_commit("x", same)])

        assert [c.sha for c in first] == [c.sha for c in second]


class TestMerge:
    """Tests for merging a delta into a cached snapshot."""

    def test_adds_new_items(self, snapshot, make_pr, make_commit, now):
        cached = snapshot.model_copy(
            update={"commits": [make_commit("c1", now - timedelta(days=10))]}
        )
        delta = ActivityDelta(
            since=now - timedelta(days=7),
            until=now,
            new_prs=[make_pr(10, now - timedelta(days=2))],
            new_commits=[make_commit("c2", now - timedelta(days=1))],
        )

        result = merge(cached, delta, now=now)

        assert [c.sha for c in result.commits] == ["c2", "c1"]
        assert [p.id for p in result.prs] == [10]
        assert result.last_updated_at == now
        assert result.collection_window_end == now

    def test_does_not_mutate_cached(self, snapshot, make_commit, now):
        delta = ActivityDelta(
            since=now - timedelta(days=1),
            until=now,
            new_commits=[make_commit("c1", now)],
        )

        merge(snapshot, delta, now=now)

        assert snapshot.commits == []

    def test_idempotent(self, snapshot, make_pr, make_issue, make_commit, make_release, now):
        """Applying the same delta twice yields the same snapshot."""
        delta = ActivityDelta(
            since=now - timedelta(days=7),
            until=now,
            new_prs=[make_pr(1, now - timedelta(days=1)), make_pr(2, now - timedelta(days=2))],
            new_issues=[make_issue(3, now - timedelta(days=3))],
            new_commits=[make_commit("abc", now - timedelta(hours=5))],
            new_releases=[make_release(4, now - timedelta(days=4))],
        )

        once = merge(snapshot, delta, now=now)
        twice = merge(once, delta, now=now)

        assert twice == once
        assert twice.total_items == 4

    def test_scalars_replaced_wholesale(self, snapshot, now):
        cached = snapshot.model_copy(update={"stars": 10, "ossf_score": 7.5})
        scalars = RepositoryScalars(stars=25, forks=3)
        delta = ActivityDelta(since=now, until=now)

        result = merge(cached, delta, updated_scalars=scalars, now=now)

        assert result.stars == 25
        assert result.forks == 3
        assert result.ossf_score == 0.0

    def test_scalars_kept_when_omitted(self, snapshot, now):
        cached = snapshot.model_copy(update={"stars": 10})

        result = merge(cached, ActivityDelta(since=now, until=now), now=now)

        assert result.stars == 10

    def test_preserves_eligibility(self, snapshot, now):
        eligibility = EligibilityInfo(eligibility_status="eligible", reviewer="ops")
        cached = snapshot.model_copy(update={"eligibility": eligibility})

        result = merge(cached, ActivityDelta(since=now, until=now), now=now)

        assert result.eligibility == eligibility
        assert result.eligibility.model_extra == {"reviewer": "ops"}


class TestPrune:
    """Tests for retention pruning."""

    def test_five_years_of_items_with_three_year_retention(
        self, snapshot, make_pr, make_commit, now
    ):
        """Only items from the last three years survive."""
        prs = [make_pr(i, subtract_months(now, months)) for i, months in enumerate(range(0, 60, 6))]
        commits = [
            make_commit(f"sha{months}", subtract_months(now, months))
            for months in range(0, 60, 6)
        ]
        cached = snapshot.model_copy(update={"prs": prs, "commits": commits})

        pruned = prune(cached, retention_years=3, now=now)

        cutoff = subtract_months(now, 36)
        assert len(pruned.prs) == 7  # 0, 6, ..., 36 months old
        assert all(pr.created_at >= cutoff for pr in pruned.prs)
        assert all(c.date >= cutoff for c in pruned.commits)
        assert pruned.collection_window_start == cutoff

    def test_item_exactly_at_cutoff_is_kept(self, snapshot, make_release, now):
        cutoff = retention_cutoff(3, now)
        cached = snapshot.model_copy(
            update={
                "releases": [
                    make_release(1, cutoff),
                    make_release(2, cutoff - timedelta(seconds=1)),
                ]
            }
        )

        pruned = prune(cached, retention_years=3, now=now)

        assert [r.id for r in pruned.releases] == [1]

    def test_scalars_untouched(self, snapshot, now):
        cached = snapshot.model_copy(update={"stars": 99, "npm_downloads_12mo": 5})

        pruned = prune(cached, now=now)

        assert pruned.stars == 99
        assert pruned.npm_downloads_12mo == 5


class TestFilterByWindow:
    """Tests for window filtering."""

    @pytest.mark.parametrize(
        "offset_days,included",
        [(0, True), (10, True), (30, True), (31, False), (-1, False)],
    )
    def test_closed_interval(self, make_commit, now, offset_days, included):
        window = TimeWindow(start=now - timedelta(days=30), end=now)
        commit = make_commit("c", now - timedelta(days=offset_days))

        assert (filter_by_window([commit], window) == [commit]) is included
