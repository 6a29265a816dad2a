"""
Collector error taxonomy.

Every failure a collector surfaces is one of these. The orchestrator catches
them per source and records them on the collection state; none of them
aborts a whole collection pass.
"""

from datetime import datetime


class CollectorError(Exception):
    """Base exception for collector failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class TransientUpstreamError(CollectorError):
    """Network failure or 5xx after retries. Retried later via backoff."""


class RateLimitExceeded(CollectorError):
    """Upstream quota exhausted until ``reset_at``."""

    def __init__(
        self,
        message: str,
        reset_at: datetime,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.reset_at = reset_at


class AuthError(CollectorError):
    """Credentials rejected. Needs operator action, does not block sibling sources."""


class UpstreamRequestError(CollectorError):
    """Non-retryable 4xx response other than auth and rate limiting."""


class PackageNotFoundError(CollectorError):
    """No registry package is known for the repository."""
