"""Search Indexer Port - Domain interface for the full-text indexer.

Architecture: Hexagonal - Port interface in domain layer
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence
from uuid import UUID


class SearchIndexerPort(ABC):
    """Port interface for pushing documents into a search index.

    Implementations must be idempotent: indexing an already indexed document
    replaces its entry. The core calls the indexer synchronously after writes
    (best-effort) and from the scheduled reconciliation task.
    """

    @abstractmethod
    async def index_one(self, document) -> Optional[str]:
        """Index one document.

        Returns:
            Index entry id, or None if the indexer did not accept the document

        Raises:
            SearchIndexError: If the indexer is unavailable
        """
        pass

    @abstractmethod
    async def index_batch(self, documents: Sequence) -> Dict[UUID, str]:
        """Index many documents in one call.

        Returns:
            Mapping of document id to index entry id for accepted documents.
            Documents missing from the mapping were not indexed.

        Raises:
            SearchIndexError: If the whole batch failed
        """
        pass

    @abstractmethod
    async def remove(self, index_id: str) -> None:
        """Remove an entry from the index."""
        pass

    @abstractmethod
    async def update(self, document) -> None:
        """Refresh the indexed fields of an already indexed document."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry from the index.

        Raises:
            SearchIndexError: If the indexer is unavailable
        """
        pass
