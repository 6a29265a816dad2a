"""
Redis-backed persistent state store.

Thin async wrapper over ``redis.asyncio`` exposing exactly the operations the
pipeline relies on: plain values, hashes, sorted sets (retry/failure indexes),
lists (webhook FIFO, error history) and sets (processed-event dedup with TTL).

The wrapper owns connection lifecycle the same way the queue classes do and
accepts a pre-built client so tests can inject an in-process Redis.
"""

import logging
from types import TracebackType

import redis.asyncio as redis

from ris_collector.config.settings import get_settings

logger = logging.getLogger(__name__)


class RedisStateStore:
    """
    Keyed storage used by the collection pipeline.

    Usage:
        async with RedisStateStore() as store:
            await store.set("key", "value")
            await store.zadd("index", {"acme/widgets": 1700000000.0})
    """

    def __init__(
        self,
        redis_url: str | None = None,
        client: redis.Redis | None = None,
    ):
        """
        Initialize the store.

        Args:
            redis_url: Redis connection URL (defaults to settings)
            client: Existing client to use instead of connecting
        """
        self._redis_url = redis_url
        self._redis: redis.Redis | None = client
        self._owns_client = client is None

    async def connect(self) -> None:
        """Establish Redis connection if no client was injected."""
        if self._redis is not None:
            return

        url = self._redis_url or str(get_settings().redis_url)
        self._redis = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Connected to Redis state store")

    async def close(self) -> None:
        """Close Redis connection if this store created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis state store connection closed")

    async def __aenter__(self) -> "RedisStateStore":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    # ── Plain values ────────────────────────────────────────────

    async def get(self, key: str) -> str | None:
        return await self.redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(key, value)

    async def delete(self, *keys: str) -> int:
        return await self.redis.delete(*keys)

    async def expire(self, key: str, seconds: int) -> None:
        await self.redis.expire(key, seconds)

    # ── Hashes ──────────────────────────────────────────────────

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.redis.hgetall(key)

    async def hget(self, key: str, field: str) -> str | None:
        return await self.redis.hget(key, field)

    async def hset(self, key: str, field: str, value: str) -> None:
        await self.redis.hset(key, field, value)

    async def hdel(self, key: str, field: str) -> None:
        await self.redis.hdel(key, field)

    async def hexists(self, key: str, field: str) -> bool:
        return bool(await self.redis.hexists(key, field))

    # ── Sorted sets ─────────────────────────────────────────────

    async def zadd(self, key: str, mapping: dict[str, float]) -> None:
        await self.redis.zadd(key, mapping)

    async def zrangebyscore(
        self,
        key: str,
        min_score: float,
        max_score: float,
        limit: int | None = None,
    ) -> list[str]:
        if limit is None:
            return await self.redis.zrangebyscore(key, min_score, max_score)
        return await self.redis.zrangebyscore(
            key, min_score, max_score, start=0, num=limit
        )

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.redis.zrevrange(key, start, end)

    async def zrem(self, key: str, member: str) -> None:
        await self.redis.zrem(key, member)

    async def zcard(self, key: str) -> int:
        return await self.redis.zcard(key)

    async def zscore(self, key: str, member: str) -> float | None:
        return await self.redis.zscore(key, member)

    # ── Lists ───────────────────────────────────────────────────

    async def rpush(self, key: str, value: str) -> int:
        return await self.redis.rpush(key, value)

    async def lpush(self, key: str, value: str) -> int:
        return await self.redis.lpush(key, value)

    async def lpop(self, key: str) -> str | None:
        return await self.redis.lpop(key)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.redis.lrange(key, start, end)

    async def ltrim(self, key: str, start: int, end: int) -> None:
        await self.redis.ltrim(key, start, end)

    async def llen(self, key: str) -> int:
        return await self.redis.llen(key)

    # ── Sets ────────────────────────────────────────────────────

    async def sadd(self, key: str, member: str) -> None:
        await self.redis.sadd(key, member)

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self.redis.sismember(key, member))

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
