"""
Token bucket rate limiting shared per upstream API.

Every collector acquires a token from its upstream's limiter before each
HTTP request. The scheduler uses the same bucket type to pace repositories
in batch passes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

GITHUB = "github"
NPM = "npm"
JSDELIVR = "jsdelivr"
OSSF = "ossf"


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity `capacity`
    (defaults to `rate`).
    """

    rate: float  # requests per minute
    capacity: float | None = None
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        if self.capacity is None:
            self.capacity = float(self.rate)
        self._tokens = float(self.capacity)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """
        Wait until a token is available, then consume it.

        Tokens refill continuously rather than in bursts.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.capacity),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._last_update = time.monotonic()
                self._tokens = 0
            else:
                self._tokens -= 1

    @classmethod
    def pacer(cls, delay_seconds: float) -> "RateLimiter | None":
        """
        One request per ``delay_seconds`` with no burst.

        Returns None for a non-positive delay (no pacing).
        """
        if delay_seconds <= 0:
            return None
        return cls(rate=60.0 / delay_seconds, capacity=1.0)


class RateLimiterRegistry:
    """Limiters keyed by upstream API name, created on first use."""

    def __init__(self, rates: dict[str, float] | None = None, default_rate: float = 60.0):
        self._rates = dict(rates or {})
        self._default_rate = default_rate
        self._limiters: dict[str, RateLimiter] = {}

    def get(self, upstream: str) -> RateLimiter:
        limiter = self._limiters.get(upstream)
        if limiter is None:
            limiter = RateLimiter(rate=self._rates.get(upstream, self._default_rate))
            self._limiters[upstream] = limiter
        return limiter

    async def acquire(self, upstream: str) -> None:
        await self.get(upstream).acquire()

    @classmethod
    def from_settings(cls, settings) -> "RateLimiterRegistry":
        return cls(
            {
                GITHUB: settings.github_rate_limit,
                NPM: settings.npm_rate_limit,
                JSDELIVR: settings.jsdelivr_rate_limit,
                OSSF: settings.ossf_rate_limit,
            }
        )
