"""
HTTP infrastructure layer shared by all collectors.

Provides:
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with retry, per-upstream rate limiting and
  response classification into the collector error taxonomy

Status classification:
- 401                                   -> AuthError
- 429, or 403 with exhausted quota      -> RateLimitExceeded(reset_at), no retry
- 5xx, timeouts, connection errors      -> retried, then TransientUpstreamError
- any other 4xx                         -> UpstreamRequestError
- statuses listed in ``allow_statuses`` -> returned to the caller unchanged
"""

import asyncio
import logging
import random
from collections.abc import Callable, Collection
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from ris_collector.activity.schemas import utc_now
from ris_collector.collectors.errors import (
    AuthError,
    RateLimitExceeded,
    TransientUpstreamError,
    UpstreamRequestError,
)
from ris_collector.collectors.rate_limiter import RateLimiterRegistry
from ris_collector.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_WAIT = timedelta(seconds=60)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in seconds for a 0-indexed retry attempt, jitter applied."""
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in {500, 502, 503, 504}

    def is_retryable_exception(self, exc: Exception) -> bool:
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        )


def parse_reset_at(
    headers: httpx.Headers, now: datetime | None = None
) -> datetime:
    """
    When an exhausted quota resets.

    Uses ``X-RateLimit-Reset`` (epoch seconds), then ``Retry-After``
    (seconds), then a one-minute default.
    """
    now = now or utc_now()
    reset = headers.get("x-ratelimit-reset")
    if reset and reset.strip().isdigit():
        return datetime.fromtimestamp(int(reset), tz=timezone.utc)
    retry_after = headers.get("retry-after")
    if retry_after and retry_after.strip().isdigit():
        return now + timedelta(seconds=int(retry_after))
    return now + DEFAULT_RATE_LIMIT_WAIT


def is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code == 403:
        return (
            response.headers.get("x-ratelimit-remaining") == "0"
            or "retry-after" in response.headers
        )
    return False


class HTTPClient:
    """
    Async HTTP client with retry logic and rate limiting.

    Example:
        async with HTTPClient(RetryConfig(max_retries=3), rate_limiters=limiters) as client:
            response = await client.get(
                "https://api.npmjs.org/downloads/point/last-month/react",
                upstream="npm",
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        rate_limiters: RateLimiterRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            rate_limiters: Per-upstream limiters acquired before every request.
            clock: Source of the current time for reset computations.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.rate_limiters = rate_limiters or RateLimiterRegistry()
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HTTPClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        upstream: str | None = None,
        allow_statuses: Collection[int] = (),
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers
            upstream: Rate limiter key (e.g. "github"); no limiting if None
            allow_statuses: Error statuses returned instead of raised (e.g. 404)

        Returns:
            httpx.Response on success or on an allowed status

        Raises:
            AuthError, RateLimitExceeded, TransientUpstreamError, UpstreamRequestError
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be opened before use")

        last_status_code: int | None = None
        last_response_body: str | None = None

        for attempt in range(self.retry_config.max_retries + 1):
            if upstream:
                await self.rate_limiters.acquire(upstream)

            try:
                response = await self._client.get(url, params=params, headers=headers)
            except httpx.TransportError as e:
                if (
                    self.retry_config.is_retryable_exception(e)
                    and attempt < self.retry_config.max_retries
                ):
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {url}, "
                        f"attempt {attempt + 1}/{self.retry_config.max_retries + 1}, "
                        f"backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise TransientUpstreamError(
                    f"Request to {url} failed after {attempt + 1} attempts: {e}",
                    status_code=last_status_code,
                ) from e

            status = response.status_code
            if status < 400 or status in allow_statuses:
                return response

            if status == 401:
                raise AuthError(
                    f"Authentication rejected by {url}",
                    status_code=status,
                    response_body=response.text,
                )

            if is_rate_limited(response):
                reset_at = parse_reset_at(response.headers, self._clock())
                get_metrics().record_rate_limit_hit(upstream or "unknown")
                raise RateLimitExceeded(
                    f"Rate limit exceeded for {url}, resets at {reset_at.isoformat()}",
                    reset_at=reset_at,
                    status_code=status,
                    response_body=response.text,
                )

            if self.retry_config.is_retryable_status(status):
                last_status_code = status
                last_response_body = response.text
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable status {status} from {url}, "
                        f"attempt {attempt + 1}/{self.retry_config.max_retries + 1}, "
                        f"backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise TransientUpstreamError(
                    f"Request to {url} failed with status {status} after {attempt + 1} attempts",
                    status_code=status,
                    response_body=last_response_body,
                )

            raise UpstreamRequestError(
                f"Request to {url} failed with status {status}",
                status_code=status,
                response_body=response.text,
            )

        raise TransientUpstreamError(
            f"Request to {url} failed after {self.retry_config.max_retries + 1} attempts",
            status_code=last_status_code,
            response_body=last_response_body,
        )

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        upstream: str | None = None,
    ) -> Any:
        response = await self.get(url, params=params, headers=headers, upstream=upstream)
        return response.json()
