"""
Collection state tracker.

Persists CollectionState records and keeps two sorted-set indexes in step
with them:

- pending retries, scored by ``next_retry_at``
- repositories with failures, scored by ``last_attempt_at``

Both entries are removed as soon as a repository becomes complete.

Every mutation is a read-modify-write of one repository's record. The four
source groups of a baseline run mutate the same record concurrently, so the
tracker serializes mutations per repository with an in-process lock.
"""

import asyncio
import logging
import weakref
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from ris_collector.activity.schemas import utc_now
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.state.schemas import CollectionState, SourceName
from ris_collector.storage import keys
from ris_collector.storage.errors import CorruptedStateError
from ris_collector.storage.store import RedisStateStore

logger = logging.getLogger(__name__)


class CollectionStateTracker:
    """
    Reads and mutates per-repository collection state.

    Usage:
        tracker = CollectionStateTracker(store)
        state = await tracker.initialize(repo)
        await tracker.mark_in_progress(repo, SourceName.GITHUB_PRS)
        await tracker.mark_completed(repo, SourceName.GITHUB_PRS, items_collected=42)
    """

    def __init__(
        self,
        store: RedisStateStore,
        backoff_cap_minutes: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._backoff_cap_minutes = backoff_cap_minutes
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, repo: RepositoryKey) -> asyncio.Lock:
        """Per-repository lock, dropped once nothing holds or awaits it."""
        lock = self._locks.get(str(repo))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[str(repo)] = lock
        return lock

    # ── Persistence ─────────────────────────────────────────────

    async def get(self, repo: RepositoryKey) -> CollectionState | None:
        """Load state; a malformed record is logged and treated as absent."""
        key = keys.collection_state(str(repo))
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return CollectionState.model_validate_json(raw)
        except ValidationError as e:
            logger.error("%s", CorruptedStateError(key, str(e)))
            return None

    async def save(self, state: CollectionState) -> None:
        """Persist state and update the retry/failure indexes."""
        repository = state.repository
        await self._store.set(keys.collection_state(repository), state.model_dump_json())

        if state.is_complete:
            await self._store.zrem(keys.FAILED_COLLECTIONS, repository)
            await self._store.zrem(keys.PENDING_RETRIES, repository)
            return

        if state.is_partial or state.attempt_count > 0:
            await self._store.zadd(
                keys.FAILED_COLLECTIONS, {repository: state.last_attempt_at.timestamp()}
            )
            if state.next_retry_at is not None:
                await self._store.zadd(
                    keys.PENDING_RETRIES, {repository: state.next_retry_at.timestamp()}
                )
            else:
                await self._store.zrem(keys.PENDING_RETRIES, repository)

    async def initialize(self, repo: RepositoryKey) -> CollectionState:
        """Create (or overwrite) a fresh all-pending state."""
        now = self._clock()
        state = CollectionState(repository=str(repo), started_at=now, last_attempt_at=now)
        async with self._lock_for(repo):
            await self.save(state)
        logger.info("Initialized collection state for %s", repo)
        return state

    async def _mutate(
        self,
        repo: RepositoryKey,
        change: Callable[[CollectionState, datetime], object],
    ) -> CollectionState | None:
        async with self._lock_for(repo):
            state = await self.get(repo)
            if state is None:
                logger.warning("No collection state for %s", repo)
                return None
            change(state, self._clock())
            await self.save(state)
            return state

    # ── Transitions ─────────────────────────────────────────────

    async def mark_in_progress(
        self, repo: RepositoryKey, source: SourceName
    ) -> CollectionState | None:
        return await self._mutate(repo, lambda state, now: state.start(source, now))

    async def mark_completed(
        self,
        repo: RepositoryKey,
        source: SourceName,
        items_collected: int | None = None,
    ) -> CollectionState | None:
        state = await self._mutate(
            repo, lambda state, now: state.complete(source, now, items_collected)
        )
        if state is not None and state.is_complete:
            logger.info("Collection complete for %s", repo)
        return state

    async def mark_failed(
        self, repo: RepositoryKey, source: SourceName, error: str
    ) -> CollectionState | None:
        state = await self._mutate(
            repo,
            lambda state, now: state.fail(source, error, now, self._backoff_cap_minutes),
        )
        if state is not None:
            logger.warning(
                "Source %s failed for %s (retry %d, next at %s): %s",
                source.value,
                repo,
                state.source(source).retry_count,
                state.next_retry_at.isoformat() if state.next_retry_at else "-",
                error,
            )
        return state

    def get_sources_needing_collection(self, state: CollectionState) -> list[SourceName]:
        """Pending, failed and stale in-progress sources, in canonical order."""
        return state.sources_needing_collection()

    async def reset_failed_sources(self, repo: RepositoryKey) -> CollectionState | None:
        """Return failed sources to pending and make the repository due now."""
        state = await self._mutate(repo, lambda state, now: state.reset_failed(now))
        if state is not None:
            logger.info("Reset failed sources for %s", repo)
        return state

    # ── Indexes ─────────────────────────────────────────────────

    async def get_repositories_needing_retry(
        self, limit: int = 10, now: datetime | None = None
    ) -> list[RepositoryKey]:
        """Repositories whose ``next_retry_at`` is due, soonest first."""
        now = now or self._clock()
        members = await self._store.zrangebyscore(
            keys.PENDING_RETRIES, 0, now.timestamp(), limit=limit
        )
        return _parse_keys(members)

    async def get_failed_collections(self, limit: int = 50) -> list[CollectionState]:
        """States of repositories with failures, most recently attempted first."""
        members = await self._store.zrevrange(keys.FAILED_COLLECTIONS, 0, limit - 1)
        states: list[CollectionState] = []
        for repo in _parse_keys(members):
            state = await self.get(repo)
            if state is not None:
                states.append(state)
        return states

    async def get_collection_stats(self) -> dict[str, int]:
        return {
            "total_failed": await self._store.zcard(keys.FAILED_COLLECTIONS),
            "pending_retries": await self._store.zcard(keys.PENDING_RETRIES),
        }


def _parse_keys(members: list[str]) -> list[RepositoryKey]:
    repos: list[RepositoryKey] = []
    for member in members:
        try:
            repos.append(RepositoryKey.parse(member))
        except ValueError:
            logger.warning("Ignoring malformed index member %r", member)
    return repos
