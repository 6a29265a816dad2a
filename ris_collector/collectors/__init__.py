"""Source collectors, shared HTTP plumbing and the credential pool."""

from ris_collector.collectors.cdn import CdnCollector, CdnMetrics
from ris_collector.collectors.errors import (
    AuthError,
    CollectorError,
    PackageNotFoundError,
    RateLimitExceeded,
    TransientUpstreamError,
    UpstreamRequestError,
)
from ris_collector.collectors.github import BasicStats, GitHubCollector, GitHubDataset
from ris_collector.collectors.http_client import HTTPClient, RetryConfig
from ris_collector.collectors.npm import NpmCollector, NpmMetrics, package_name_for
from ris_collector.collectors.ossf import ScorecardCollector, ScorecardMetrics
from ris_collector.collectors.pool import CollectorPool
from ris_collector.collectors.rate_limiter import RateLimiter, RateLimiterRegistry

__all__ = [
    "AuthError",
    "BasicStats",
    "CdnCollector",
    "CdnMetrics",
    "CollectorError",
    "CollectorPool",
    "GitHubCollector",
    "GitHubDataset",
    "HTTPClient",
    "NpmCollector",
    "NpmMetrics",
    "PackageNotFoundError",
    "RateLimitExceeded",
    "RateLimiter",
    "RateLimiterRegistry",
    "RetryConfig",
    "ScorecardCollector",
    "ScorecardMetrics",
    "TransientUpstreamError",
    "UpstreamRequestError",
    "package_name_for",
]
