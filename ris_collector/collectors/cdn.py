"""jsDelivr CDN statistics collector."""

import logging
from dataclasses import dataclass
from typing import Literal

from ris_collector.collectors.http_client import HTTPClient
from ris_collector.collectors.rate_limiter import JSDELIVR

logger = logging.getLogger(__name__)

JSDELIVR_API = "https://data.jsdelivr.com/v1"

Period = Literal["day", "week", "month", "quarter", "year"]


@dataclass
class CdnMetrics:
    hits_12mo: int
    hits_last_month: int


class CdnCollector:
    """Hit counts for an npm package served through jsDelivr.

    A package jsDelivr has never served returns 404, which counts as 0 hits.
    """

    def __init__(self, http: HTTPClient):
        self._http = http

    async def fetch_metrics(self, package: str) -> CdnMetrics:
        return CdnMetrics(
            hits_12mo=await self.fetch_period(package, "year"),
            hits_last_month=await self.fetch_period(package, "month"),
        )

    async def fetch_period(self, package: str, period: Period) -> int:
        response = await self._http.get(
            f"{JSDELIVR_API}/stats/packages/npm/{package}",
            params={"period": period},
            headers={"Accept": "application/json"},
            upstream=JSDELIVR,
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            logger.debug("No jsDelivr stats for %s (%s)", package, period)
            return 0
        hits = response.json().get("hits") or {}
        return int(hits.get("total") or 0)
