"""Libraries: repository identity and the approved-library listing."""

from ris_collector.libraries.registry import LibraryRegistry
from ris_collector.libraries.schemas import ApprovedLibrary, RepositoryKey

__all__ = ["ApprovedLibrary", "LibraryRegistry", "RepositoryKey"]
