"""
Snapshot and derived-metrics persistence.

Snapshots and metrics are stored as JSON strings under per-repository keys.
A record that fails validation is logged as corrupted and reported as
absent so a fresh baseline can replace it.
"""

import logging
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ris_collector.activity.calculator import DerivedMetrics
from ris_collector.activity.schemas import ActivitySnapshot
from ris_collector.libraries.schemas import RepositoryKey
from ris_collector.storage import keys
from ris_collector.storage.errors import CorruptedStateError
from ris_collector.storage.store import RedisStateStore

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SnapshotRepository:
    """Reads and writes ActivitySnapshot and DerivedMetrics records."""

    def __init__(self, store: RedisStateStore) -> None:
        self._store = store

    async def _load(self, key: str, model: type[ModelT]) -> ModelT | None:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            error = CorruptedStateError(key, str(e))
            logger.error("%s", error)
            return None

    async def get_snapshot(self, repo: RepositoryKey) -> ActivitySnapshot | None:
        return await self._load(keys.activity(str(repo)), ActivitySnapshot)

    async def save_snapshot(self, snapshot: ActivitySnapshot) -> None:
        await self._store.set(keys.activity(str(snapshot.key)), snapshot.model_dump_json())
        logger.debug(
            "Saved snapshot %s (%d items)", snapshot.key, snapshot.total_items
        )

    async def has_snapshot(self, repo: RepositoryKey) -> bool:
        return await self._store.get(keys.activity(str(repo))) is not None

    async def get_metrics(self, repo: RepositoryKey) -> DerivedMetrics | None:
        return await self._load(keys.metrics(str(repo)), DerivedMetrics)

    async def save_metrics(self, metrics: DerivedMetrics) -> None:
        repo = RepositoryKey(metrics.owner, metrics.repo)
        await self._store.set(keys.metrics(str(repo)), metrics.model_dump_json())
