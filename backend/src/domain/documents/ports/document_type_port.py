"""Document Type Capability Port - answers whether a type is content indexed.

Architecture: Hexagonal - Port interface in domain layer
"""

from abc import ABC, abstractmethod


class DocumentTypeCapabilityPort(ABC):
    """Capability lookup keyed by document type id.

    Indexability is resolved through this lookup rather than by inspecting
    type names, so new types only need a row in the type catalogue.
    """

    @abstractmethod
    async def is_indexable(self, document_type_id: int) -> bool:
        """Return True if documents of this type take part in content indexing."""
        pass
