"""Read side of the library approval workflow."""

import logging

from pydantic import ValidationError

from ris_collector.libraries.schemas import ApprovedLibrary, RepositoryKey
from ris_collector.storage import keys
from ris_collector.storage.store import RedisStateStore

logger = logging.getLogger(__name__)


class LibraryRegistry:
    """Lists approved repositories. Approval itself happens elsewhere."""

    def __init__(self, store: RedisStateStore) -> None:
        self._store = store

    async def get_approved(self) -> list[ApprovedLibrary]:
        """All approved libraries, sorted by key. Malformed entries are skipped."""
        raw = await self._store.hgetall(keys.APPROVED_LIBRARIES)
        libraries: list[ApprovedLibrary] = []
        for field, value in sorted(raw.items()):
            try:
                libraries.append(ApprovedLibrary.model_validate_json(value))
            except ValidationError as e:
                logger.warning("Skipping malformed approved library %s: %s", field, e)
        return libraries

    async def get_approved_library(self, repo: RepositoryKey) -> ApprovedLibrary | None:
        raw = await self._store.hget(keys.APPROVED_LIBRARIES, str(repo))
        if raw is None:
            return None
        try:
            return ApprovedLibrary.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Malformed approved library %s: %s", repo, e)
            return None

    async def is_approved(self, repo: RepositoryKey) -> bool:
        return await self._store.hexists(keys.APPROVED_LIBRARIES, str(repo))

    async def count(self) -> int:
        return len(await self._store.hgetall(keys.APPROVED_LIBRARIES))
