"""Collection orchestration and scheduling."""

from ris_collector.collection.config import CollectionConfig
from ris_collector.collection.orchestrator import CollectionOrchestrator, CollectionResult
from ris_collector.collection.scheduler import CollectionScheduler

__all__ = [
    "CollectionConfig",
    "CollectionOrchestrator",
    "CollectionResult",
    "CollectionScheduler",
]
