"""
Credential rotation pool.

Wraps several collector instances, one per credential, and load-balances
between them round-robin. A collector that reports RateLimitExceeded is
sidelined until its reset time. Bookkeeping is process-local and starts
fresh on restart; collectors re-probe their own quota, so stale state
corrects itself quickly.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Generic, TypeVar

from ris_collector.activity.schemas import utc_now
from ris_collector.collectors.errors import RateLimitExceeded
from ris_collector.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

CollectorT = TypeVar("CollectorT")
ResultT = TypeVar("ResultT")


class CollectorPool(Generic[CollectorT]):
    """
    Round-robin pool of collectors with rate-limit sidelining.

    Example:
        pool = CollectorPool.from_tokens("tok1,tok2", lambda t: GitHubCollector(http, t))
        prs = await pool.run(lambda c: c.fetch_all_prs(repo))
    """

    def __init__(
        self,
        collectors: Sequence[CollectorT],
        clock: Callable[[], datetime] = utc_now,
    ):
        if not collectors:
            raise ValueError("CollectorPool needs at least one collector")
        self._collectors = list(collectors)
        self._clock = clock
        self._cursor = 0
        self._exhausted_until: dict[int, datetime] = {}

    @classmethod
    def from_tokens(
        cls,
        tokens: str | Sequence[str],
        factory: Callable[[str], CollectorT],
        clock: Callable[[], datetime] = utc_now,
    ) -> "CollectorPool[CollectorT]":
        """Build a pool from a comma-separated string or a list of credentials."""
        if isinstance(tokens, str):
            tokens = [t.strip() for t in tokens.split(",")]
        tokens = [t for t in tokens if t]
        if not tokens:
            raise ValueError("No credentials configured for collector pool")
        logger.info("Initialized collector pool with %d credential(s)", len(tokens))
        return cls([factory(token) for token in tokens], clock=clock)

    @property
    def size(self) -> int:
        return len(self._collectors)

    def is_exhausted(self, index: int, now: datetime | None = None) -> bool:
        """Whether ``index`` is sidelined; expired flags are cleared."""
        until = self._exhausted_until.get(index)
        if until is None:
            return False
        if until <= (now or self._clock()):
            del self._exhausted_until[index]
            return False
        return True

    @property
    def available_count(self) -> int:
        now = self._clock()
        return sum(1 for i in range(self.size) if not self.is_exhausted(i, now))

    def next(self) -> tuple[int, CollectorT]:
        """
        Next usable collector, round-robin from the last-used position.

        When every collector is sidelined, returns the one whose reset comes
        soonest; the caller decides whether to wait.
        """
        now = self._clock()
        for offset in range(self.size):
            index = (self._cursor + offset) % self.size
            if not self.is_exhausted(index, now):
                self._cursor = (index + 1) % self.size
                return index, self._collectors[index]

        index = min(self._exhausted_until, key=self._exhausted_until.__getitem__)
        self._cursor = (index + 1) % self.size
        return index, self._collectors[index]

    def mark_exhausted(self, index: int, reset_at: datetime) -> None:
        self._exhausted_until[index] = reset_at
        logger.warning(
            "Collector %d of %d rate limited until %s",
            index + 1,
            self.size,
            reset_at.isoformat(),
        )
        get_metrics().set_pool_available(self.available_count)

    async def run(self, operation: Callable[[CollectorT], Awaitable[ResultT]]) -> ResultT:
        """
        Run one logical operation, rotating on RateLimitExceeded.

        Tries at most ``size`` collectors, then re-raises the last
        RateLimitExceeded. Other errors propagate immediately.
        """
        last_error: RateLimitExceeded | None = None
        for _ in range(self.size):
            index, collector = self.next()
            try:
                return await operation(collector)
            except RateLimitExceeded as e:
                self.mark_exhausted(index, e.reset_at)
                last_error = e
        assert last_error is not None
        raise last_error
