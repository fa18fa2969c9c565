"""Error taxonomy for the document repository core.

Reads never raise for absent ids (they return None or an empty list). Writes
that need an existing row raise DocumentNotFoundError, which is a kind of
StateConflictError so callers can treat both as a rejected state change.
"""

from typing import Optional
from uuid import UUID


class DocumentError(Exception):
    """Base exception for document repository errors."""
    pass


class StateConflictError(DocumentError):
    """Operation violates a lifecycle or versioning precondition.

    Examples: deleting an already-deleted document, restoring an active one,
    creating a version from a lineage whose current version is deleted.
    """

    def __init__(self, message: str, document_id: Optional[UUID] = None):
        super().__init__(message)
        self.document_id = document_id


class DocumentNotFoundError(StateConflictError):
    """A state-changing operation referenced a document that does not exist."""

    def __init__(self, document_id: UUID):
        super().__init__(f"Document {document_id} not found", document_id=document_id)


class DuplicateContentError(StateConflictError):
    """Content hash already present in the tenant (opt-in rejection policy)."""

    def __init__(self, content_hash: str, existing_document_id: UUID):
        super().__init__(
            f"A document with the same content already exists (hash: {content_hash})",
            document_id=existing_document_id,
        )
        self.content_hash = content_hash


class DocumentValidationError(DocumentError, ValueError):
    """Missing or invalid input, rejected before any store access."""
    pass


class InfrastructureError(DocumentError):
    """Blob store, search indexer or database unavailable."""
    pass


class StorageError(InfrastructureError):
    """Blob store rejected a request or is unreachable."""
    pass


class SearchIndexError(InfrastructureError):
    """Search indexer rejected a request or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
