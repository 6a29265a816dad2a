"""Tests for the GitHub collector."""

from datetime import timedelta

import httpx
import pytest
import respx

from ris_collector.activity.schemas import subtract_months
from ris_collector.collectors.errors import RateLimitExceeded
from ris_collector.collectors.github import (
    GitHubCollector,
    commit_from_api,
    issue_from_api,
    pr_from_api,
    release_from_api,
)
from ris_collector.collectors.http_client import HTTPClient

HOST = "api.github.com"


def _iso(moment):
    return moment.isoformat().replace("+00:00", "Z")


def _pr(id, created_at, **extra):
    return {
        "id": id,
        "number": id,
        "title": f"PR {id}",
        "created_at": _iso(created_at),
        "updated_at": _iso(extra.pop("updated_at", created_at)),
        "state": "open",
        "user": {"login": "alice"},
        **extra,
    }


def _issue(id, created_at, **extra):
    return {
        "id": id,
        "number": id,
        "title": f"Issue {id}",
        "created_at": _iso(created_at),
        "state": "open",
        "user": {"login": "bob"},
        "labels": [{"name": "bug"}],
        **extra,
    }


def _commit(sha, date):
    return {
        "sha": sha,
        "commit": {"author": {"name": "Carol", "date": _iso(date)}, "message": "fix"},
        "author": {"login": "carol"},
    }


def _release(id, published_at):
    return {"id": id, "tag_name": f"v{id}", "name": None, "published_at": _iso(published_at)}


def _next_link(page):
    return {"Link": f'<https://{HOST}/repositories/1/items?page={page}>; rel="next"'}


@pytest.fixture
def collector(clock):
    http = HTTPClient(clock=clock)
    return GitHubCollector(
        http, token="ghp_test1234", lookback_months=12, max_items=50, rate_limit_floor=100, clock=clock
    )


class TestPayloadMapping:
    """Tests for REST payload mapping."""

    def test_pr_merged_from_merged_at(self, now):
        pr = pr_from_api(_pr(1, now, merged_at=_iso(now), additions=5))

        assert pr.merged is True
        assert pr.author == "alice"
        assert pr.additions == 5

    def test_issue_labels(self, now):
        issue = issue_from_api(_issue(2, now, user=None))

        assert issue.labels == ["bug"]
        assert issue.author == "unknown"

    def test_commit_author_fallback(self, now):
        data = _commit("abc", now)
        data["author"] = None

        assert commit_from_api(data).author == "Carol"

    def test_release_name_defaults_to_tag(self, now):
        release = release_from_api(_release(3, now))

        assert release.name == "v3"
        assert release.published_at == now


class TestGitHubCollector:
    """Tests for GitHubCollector requests and pagination."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_token(self, collector, repo):
        route = respx.get(host=HOST, path="/repos/acme/widgets").mock(
            return_value=httpx.Response(200, json={"stargazers_count": 7, "archived": True})
        )

        async with collector._http:
            stats = await collector.fetch_basic_stats(repo)

        assert stats.stars == 7
        assert stats.is_archived is True
        assert stats.last_commit_date is None
        assert route.calls.last.request.headers["Authorization"] == "Bearer ghp_test1234"

    @pytest.mark.asyncio
    @respx.mock
    async def test_check_rate_limit_below_floor(self, collector, clock):
        reset = int((clock.now + timedelta(minutes=10)).timestamp())
        respx.get(host=HOST, path="/rate_limit").mock(
            return_value=httpx.Response(
                200, json={"resources": {"core": {"remaining": 5, "reset": reset}}}
            )
        )

        async with collector._http:
            with pytest.raises(RateLimitExceeded) as exc_info:
                await collector.check_rate_limit()

        assert exc_info.value.reset_at == clock.now + timedelta(minutes=10)

    @pytest.mark.asyncio
    @respx.mock
    async def test_check_rate_limit_ok(self, collector):
        respx.get(host=HOST, path="/rate_limit").mock(
            return_value=httpx.Response(200, json={"rate": {"remaining": 4000, "reset": 0}})
        )

        async with collector._http:
            assert await collector.check_rate_limit() == 4000

    @pytest.mark.asyncio
    @respx.mock
    async def test_follows_next_links(self, collector, repo, now):
        respx.get(host=HOST, path="/repos/acme/widgets/commits").mock(
            side_effect=[
                httpx.Response(
                    200,
                    json=[_commit("a", now), _commit("b", now - timedelta(days=1))],
                    headers=_next_link(2),
                ),
            ]
        )
        respx.get(host=HOST, path="/repositories/1/items").mock(
            return_value=httpx.Response(200, json=[_commit("c", now - timedelta(days=2))])
        )

        async with collector._http:
            commits = await collector.fetch_all_commits(repo)

        assert [c.sha for c in commits] == ["a", "b", "c"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_full_pr_fetch_stops_at_lookback(self, collector, repo, now):
        old = subtract_months(now, 13)
        respx.get(host=HOST, path="/repos/acme/widgets/pulls").mock(
            return_value=httpx.Response(
                200,
                json=[_pr(3, now), _pr(2, now - timedelta(days=30)), _pr(1, old)],
                headers=_next_link(2),
            )
        )
        next_page = respx.get(host=HOST, path="/repositories/1/items").mock(
            return_value=httpx.Response(200, json=[])
        )

        async with collector._http:
            prs = await collector.fetch_all_prs(repo)

        assert [p.id for p in prs] == [3, 2]
        assert not next_page.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_full_fetch_respects_item_cap(self, repo, clock, now):
        http = HTTPClient(clock=clock)
        collector = GitHubCollector(http, token="t", max_items=2, clock=clock)
        respx.get(host=HOST, path="/repos/acme/widgets/commits").mock(
            return_value=httpx.Response(
                200, json=[_commit(str(i), now - timedelta(hours=i)) for i in range(5)]
            )
        )

        async with http:
            commits = await collector.fetch_all_commits(repo)

        assert len(commits) == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_issues_exclude_pull_requests(self, collector, repo, now):
        respx.get(host=HOST, path="/repos/acme/widgets/issues").mock(
            return_value=httpx.Response(
                200,
                json=[
                    _issue(1, now),
                    _issue(2, now, pull_request={"url": "https://example.test"}),
                ],
            )
        )

        async with collector._http:
            issues = await collector.fetch_issues_since(repo, now - timedelta(days=1))

        assert [i.id for i in issues] == [1]

    @pytest.mark.asyncio
    @respx.mock
    async def test_prs_since_stops_at_last_update(self, collector, repo, now):
        since = now - timedelta(days=2)
        respx.get(host=HOST, path="/repos/acme/widgets/pulls").mock(
            return_value=httpx.Response(
                200,
                json=[
                    _pr(5, now - timedelta(days=40), updated_at=now - timedelta(hours=1)),
                    _pr(4, now - timedelta(days=3), updated_at=now - timedelta(days=3)),
                    _pr(3, now - timedelta(days=1)),
                ],
            )
        )

        async with collector._http:
            prs = await collector.fetch_prs_since(repo, since)

        assert [p.id for p in prs] == [5]

    @pytest.mark.asyncio
    @respx.mock
    async def test_releases_since_filters_by_publish_time(self, collector, repo, now):
        respx.get(host=HOST, path="/repos/acme/widgets/releases").mock(
            return_value=httpx.Response(
                200,
                json=[_release(2, now), _release(1, now - timedelta(days=10))],
            )
        )

        async with collector._http:
            releases = await collector.fetch_releases_since(repo, now - timedelta(days=1))

        assert [r.id for r in releases] == [2]

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_items_skipped(self, collector, repo, now):
        respx.get(host=HOST, path="/repos/acme/widgets/commits").mock(
            return_value=httpx.Response(200, json=[{"sha": "x"}, _commit("ok", now)])
        )

        async with collector._http:
            commits = await collector.fetch_commits_since(repo, now - timedelta(days=1))

        assert [c.sha for c in commits] == ["ok"]

    def test_name_hides_token(self, collector):
        assert collector.name == "github:1234"


class TestCompositeFetches:
    """Tests for fetch_all() and fetch_since()."""

    @pytest.fixture
    def routes(self, now):
        with respx.mock:
            respx.get(host=HOST, path="/rate_limit").mock(
                return_value=httpx.Response(200, json={"rate": {"remaining": 4000, "reset": 0}})
            )
            respx.get(host=HOST, path="/repos/acme/widgets").mock(
                return_value=httpx.Response(200, json={"stargazers_count": 1500, "forks_count": 40})
            )
            respx.get(host=HOST, path="/repos/acme/widgets/pulls").mock(
                return_value=httpx.Response(200, json=[_pr(2, now - timedelta(hours=2))])
            )
            respx.get(host=HOST, path="/repos/acme/widgets/issues").mock(
                return_value=httpx.Response(
                    200,
                    json=[
                        _issue(7, now - timedelta(hours=3)),
                        _issue(8, now - timedelta(days=20)),
                    ],
                )
            )
            respx.get(host=HOST, path="/repos/acme/widgets/commits").mock(
                return_value=httpx.Response(200, json=[_commit("a", now - timedelta(hours=1))])
            )
            respx.get(host=HOST, path="/repos/acme/widgets/releases").mock(
                return_value=httpx.Response(200, json=[_release(3, now - timedelta(days=30))])
            )

            yield

    @pytest.mark.asyncio
    async def test_fetch_all(self, collector, repo, routes):
        async with collector._http:
            dataset = await collector.fetch_all(repo)

        assert dataset.basic.stars == 1500
        assert dataset.basic.forks == 40
        assert [p.id for p in dataset.prs] == [2]
        assert [i.id for i in dataset.issues] == [7, 8]
        assert [r.id for r in dataset.releases] == [3]
        assert dataset.total_items == 4

    @pytest.mark.asyncio
    async def test_fetch_since(self, collector, repo, routes, clock, now):
        since = now - timedelta(days=1)

        async with collector._http:
            delta = await collector.fetch_since(repo, since)

        assert delta.since == since
        assert delta.until == clock.now
        assert [p.id for p in delta.new_prs] == [2]
        assert [c.sha for c in delta.new_commits] == ["a"]
        assert delta.new_releases == []
        assert delta.total_new_items == 4

    @pytest.mark.asyncio
    @respx.mock
    async def test_low_quota_refuses_before_fetching(self, collector, repo, clock):
        respx.get(host=HOST, path="/rate_limit").mock(
            return_value=httpx.Response(
                200, json={"rate": {"remaining": 3, "reset": int(clock.now.timestamp())}}
            )
        )
        pulls = respx.get(host=HOST, path="/repos/acme/widgets/pulls")

        async with collector._http:
            with pytest.raises(RateLimitExceeded):
                await collector.fetch_since(repo, clock.now - timedelta(days=1))

        assert not pulls.called
