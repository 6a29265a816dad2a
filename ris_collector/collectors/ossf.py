"""OpenSSF Scorecard collector."""

import logging
from dataclasses import dataclass, field

from ris_collector.collectors.http_client import HTTPClient
from ris_collector.collectors.rate_limiter import OSSF
from ris_collector.libraries.schemas import RepositoryKey

logger = logging.getLogger(__name__)

SCORECARD_API = "https://api.securityscorecards.dev"

# Scorecard check name -> metric key
TRACKED_CHECKS = {
    "Security-Policy": "security_policy",
    "Signed-Releases": "signed_releases",
    "Branch-Protection": "branch_protection",
    "Dangerous-Workflow": "dangerous_workflow",
    "Dependency-Update-Tool": "dependency_update_tool",
    "Maintained": "maintained",
    "Code-Review": "code_review",
    "CI-Tests": "ci_tests",
}


@dataclass
class ScorecardMetrics:
    overall_score: float = 0.0  # 0-10
    checks: dict[str, float] = field(
        default_factory=lambda: {key: 0.0 for key in TRACKED_CHECKS.values()}
    )

    @property
    def normalized_score(self) -> float:
        return self.overall_score / 10


class ScorecardCollector:
    """Fetches the published scorecard for a GitHub repository.

    Repositories without a scorecard yet (404) get all-zero metrics.
    """

    def __init__(self, http: HTTPClient):
        self._http = http

    async def fetch_metrics(self, repo: RepositoryKey) -> ScorecardMetrics:
        response = await self._http.get(
            f"{SCORECARD_API}/projects/github.com/{repo}",
            headers={"Accept": "application/json"},
            upstream=OSSF,
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            logger.debug("No OpenSSF scorecard for %s", repo)
            return ScorecardMetrics()

        data = response.json()
        scores = {
            check.get("name"): check.get("score")
            for check in data.get("checks") or []
            if isinstance(check, dict)
        }
        checks = {}
        for name, key in TRACKED_CHECKS.items():
            score = scores.get(name)
            # Scorecard reports -1 for checks it could not evaluate
            checks[key] = score / 10 if isinstance(score, (int, float)) and score >= 0 else 0.0

        return ScorecardMetrics(overall_score=float(data.get("score") or 0.0), checks=checks)
