"""Duplicate content detection

Exact content-hash equality within one tenant. Detection is advisory: it
never blocks a write by itself (see DocumentService.reject_duplicates for the
opt-in rejection policy).
"""

from typing import List, Optional
from uuid import UUID

from models.document import Document

from .store import DocumentStore


class DuplicateFinder:
    """Read-only duplicate lookup over a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def find_duplicates(
        self,
        content_hash: Optional[str],
        tenant_id: int,
        include_deleted: bool = True,
        exclude_document_id: Optional[UUID] = None,
    ) -> List[Document]:
        """Documents of ``tenant_id`` whose content hash equals ``content_hash``.

        A blank hash matches nothing. Documents of other tenants are never
        returned.
        """
        if not content_hash or not content_hash.strip():
            return []

        documents = await self.store.list_by_content_hash(
            content_hash, tenant_id, include_deleted=include_deleted
        )
        if exclude_document_id is not None:
            documents = [d for d in documents if d.id != exclude_document_id]
        return documents

    async def has_duplicates(
        self,
        content_hash: Optional[str],
        tenant_id: int,
        exclude_document_id: Optional[UUID] = None,
    ) -> bool:
        duplicates = await self.find_duplicates(
            content_hash,
            tenant_id,
            include_deleted=False,
            exclude_document_id=exclude_document_id,
        )
        return bool(duplicates)
