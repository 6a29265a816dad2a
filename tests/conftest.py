"""Pytest fixtures for ris-collector tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from ris_collector.activity.schemas import (
    ActivitySnapshot,
    CommitActivity,
    IssueActivity,
    PullRequestActivity,
    ReleaseActivity,
)
from ris_collector.config.settings import Settings
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.storage.store import RedisStateStore

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryStateStore(RedisStateStore):
    """
    Dict-backed stand-in for the Redis state store.

    Implements the same operations with Redis semantics (FIFO lists, score
    ordered sets, set membership) so tracker, queue and repository code can
    be exercised without a server. TTLs are recorded, not enforced.
    """

    def __init__(self) -> None:
        super().__init__(client=None)
        self.values: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lists: dict[str, list[str]] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}
        self.healthy = True

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # Plain values
    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            for bucket in (self.values, self.hashes, self.zsets, self.lists, self.sets):
                if key in bucket:
                    del bucket[key]
                    removed += 1
        return removed

    async def expire(self, key: str, seconds: int) -> None:
        self.ttls[key] = seconds

    # Hashes
    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hget(self, key: str, field: str) -> str | None:
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> None:
        self.hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, field: str) -> None:
        self.hashes.get(key, {}).pop(field, None)

    async def hexists(self, key: str, field: str) -> bool:
        return field in self.hashes.get(key, {})

    # Sorted sets
    def _ordered(self, key: str) -> list[tuple[str, float]]:
        return sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))

    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        self.zsets.setdefault(key, {}).update(mapping)

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, limit: int | None = None
    ) -> list[str]:
        members = [m for m, s in self._ordered(key) if min_score <= s <= max_score]
        return members if limit is None else members[:limit]

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        members = [m for m, _ in reversed(self._ordered(key))]
        return members[start : end + 1] if end >= 0 else members[start:]

    async def zrem(self, key: str, member: str) -> None:
        self.zsets.get(key, {}).pop(member, None)

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def zscore(self, key: str, member: str) -> float | None:
        return self.zsets.get(key, {}).get(member)

    # Lists
    async def rpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def lpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def lpop(self, key: str) -> str | None:
        items = self.lists.get(key)
        return items.pop(0) if items else None

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self.lists.get(key, [])
        return items[start : end + 1] if end >= 0 else items[start:]

    async def ltrim(self, key: str, start: int, end: int) -> None:
        if key in self.lists:
            self.lists[key] = self.lists[key][start : end + 1]

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))

    # Sets
    async def sadd(self, key: str, member: str) -> None:
        self.sets.setdefault(key, set()).add(member)

    async def sismember(self, key: str, member: str) -> bool:
        return member in self.sets.get(key, set())

    async def health_check(self) -> bool:
        return self.healthy


class Clock:
    """Mutable clock for time-dependent tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def repo() -> RepositoryKey:
    return RepositoryKey("acme", "widgets")


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",
        github_tokens="tok-a,tok-b",
        github_webhook_secret="s3cret",
    )


@pytest.fixture
def make_pr() -> Callable[..., PullRequestActivity]:
    def factory(id: int, created_at: datetime, **kwargs: Any) -> PullRequestActivity:
        return PullRequestActivity(
            id=id,
            number=kwargs.pop("number", id),
            title=kwargs.pop("title", f"PR {id}"),
            created_at=created_at,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_issue() -> Callable[..., IssueActivity]:
    def factory(id: int, created_at: datetime, **kwargs: Any) -> IssueActivity:
        return IssueActivity(
            id=id,
            number=kwargs.pop("number", id),
            title=kwargs.pop("title", f"Issue {id}"),
            created_at=created_at,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_commit() -> Callable[..., CommitActivity]:
    def factory(sha: str, date: datetime, **kwargs: Any) -> CommitActivity:
        return CommitActivity(sha=sha, date=date, **kwargs)

    return factory


@pytest.fixture
def make_release() -> Callable[..., ReleaseActivity]:
    def factory(id: int, published_at: datetime, **kwargs: Any) -> ReleaseActivity:
        return ReleaseActivity(
            id=id,
            tag_name=kwargs.pop("tag_name", f"v{id}.0.0"),
            published_at=published_at,
            **kwargs,
        )

    return factory


@pytest.fixture
def snapshot(repo: RepositoryKey, now: datetime) -> ActivitySnapshot:
    """An empty snapshot for acme/widgets created at NOW."""
    return ActivitySnapshot.empty(repo, "widgets", now)


# ── Webhook payloads ──────────────────────────────────────


def _repository(owner: str = "acme", name: str = "widgets") -> dict[str, Any]:
    return {"name": name, "full_name": f"{owner}/{name}", "owner": {"login": owner}}


@pytest.fixture
def push_payload() -> dict[str, Any]:
    return {
        "ref": "refs/heads/main",
        "repository": _repository(),
        "commits": [
            {
                "id": "push-sha-1",
                "timestamp": "2026-03-01T10:00:00Z",
                "message": "Fix overflow",
                "author": {"name": "Dana", "username": "dana"},
            },
            {
                "id": "push-sha-2",
                "timestamp": "2026-03-01T11:00:00+00:00",
                "message": "Bump version",
                "author": {"name": "Eve"},
            },
        ],
    }


@pytest.fixture
def pull_request_payload() -> dict[str, Any]:
    return {
        "action": "closed",
        "repository": _repository(),
        "pull_request": {
            "id": 555,
            "number": 55,
            "title": "Add gears",
            "state": "closed",
            "created_at": "2026-02-20T08:00:00Z",
            "merged_at": "2026-02-28T08:00:00Z",
            "closed_at": "2026-02-28T08:00:00Z",
            "user": {"login": "frank"},
            "additions": 120,
            "deletions": 4,
        },
    }


@pytest.fixture
def issues_payload() -> dict[str, Any]:
    return {
        "action": "opened",
        "repository": _repository(),
        "issue": {
            "id": 777,
            "number": 77,
            "title": "Crash on start",
            "state": "open",
            "created_at": "2026-02-27T08:00:00Z",
            "user": {"login": "grace"},
            "labels": [{"name": "bug"}],
        },
    }


@pytest.fixture
def release_payload() -> dict[str, Any]:
    return {
        "action": "published",
        "repository": _repository(),
        "release": {
            "id": 888,
            "tag_name": "v2.0.0",
            "name": "Two",
            "published_at": "2026-02-28T12:00:00Z",
        },
    }


@pytest.fixture
def installation_payload() -> dict[str, Any]:
    return {
        "action": "created",
        "installation": {"id": 4242},
        "repositories": [
            {"name": "widgets", "full_name": "acme/widgets"},
            {"name": "gears", "full_name": "acme/gears"},
        ],
    }
