"""Lifecycle operations on document rows

Each operation runs as one unit of work through the TransactionRunner. The
transition rules live in domain.documents.lifecycle_state and are enforced
by DocumentStore while the row is locked.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from database import TransactionRunner
from domain.documents.lifecycle_state import LifecycleAction, next_state
from domain.documents.ports.object_storage_port import ObjectStoragePort, split_blob_path
from models.base import utcnow
from models.document import Document

from .store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class PermanentDeletionResult:
    """What a permanent delete removed.

    Attributes:
        document_id: Id of the removed row
        lineage_root_id: Lineage the row belonged to
        blob_path: Blob the row referenced
        blob_deleted: False when the blob was already absent (logged anomaly)
        search_index_id: Index entry still to be removed, if the row was indexed
    """
    document_id: UUID
    lineage_root_id: UUID
    blob_path: str
    blob_deleted: bool
    search_index_id: Optional[str] = None


class DocumentLifecycle:
    """Soft delete, restore, archive, unarchive and permanent delete.

    Invalid transitions raise StateConflictError, absent ids raise
    DocumentNotFoundError. Nothing is committed when an operation fails.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        blob_store: ObjectStoragePort,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.runner = runner
        self.blob_store = blob_store
        self.clock = clock

    def _store(self, session, tenant_id: int) -> DocumentStore:
        return DocumentStore(session, tenant_id, self.clock)

    async def soft_delete(
        self,
        tenant_id: int,
        document_id: UUID,
        deleted_by: Optional[str],
        reason: Optional[str] = None,
    ) -> Document:
        document = await self.runner.run(
            lambda session: self._store(session, tenant_id).soft_delete(document_id, deleted_by, reason),
            tenant_id=tenant_id,
        )
        logger.info(
            f"Soft deleted document {document_id} by {deleted_by}",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return document

    async def restore(self, tenant_id: int, document_id: UUID) -> Document:
        document = await self.runner.run(
            lambda session: self._store(session, tenant_id).restore(document_id),
            tenant_id=tenant_id,
        )
        logger.info(
            f"Restored document {document_id}",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return document

    async def archive(self, tenant_id: int, document_id: UUID) -> Document:
        document = await self.runner.run(
            lambda session: self._store(session, tenant_id).archive(document_id),
            tenant_id=tenant_id,
        )
        logger.info(
            f"Archived document {document_id}",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return document

    async def unarchive(self, tenant_id: int, document_id: UUID) -> Document:
        document = await self.runner.run(
            lambda session: self._store(session, tenant_id).unarchive(document_id),
            tenant_id=tenant_id,
        )
        logger.info(
            f"Unarchived document {document_id}",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return document

    async def permanently_delete(self, tenant_id: int, document_id: UUID) -> PermanentDeletionResult:
        """Remove the blob and the row together. Irreversible.

        Steps, in one unit of work:
        1. Lock the row
        2. Delete the blob; an already absent blob is logged as an anomaly
        3. Delete the row and commit

        A blob store failure (anything but "absent") propagates and the row
        deletion is rolled back.

        Raises:
            DocumentNotFoundError: If the document does not exist in the tenant
            StorageError: If the blob store fails
        """
        async def _delete(session) -> PermanentDeletionResult:
            store = self._store(session, tenant_id)
            document = await store.lock(document_id)
            next_state(document.lifecycle_state, LifecycleAction.PERMANENT_DELETE)

            blob_deleted = await self._delete_blob(document)
            result = PermanentDeletionResult(
                document_id=document.id,
                lineage_root_id=document.root_id,
                blob_path=document.blob_path,
                blob_deleted=blob_deleted,
                search_index_id=document.search_index_id,
            )

            await store.remove(document)
            return result

        result = await self.runner.run(_delete, tenant_id=tenant_id)
        logger.info(
            f"Permanently deleted document {document_id} (blob_deleted={result.blob_deleted})",
            extra={
                "tenant_id": tenant_id,
                "document_id": str(document_id),
                "lineage_root_id": str(result.lineage_root_id),
            },
        )
        return result

    async def _delete_blob(self, document: Document) -> bool:
        try:
            container, name = split_blob_path(document.blob_path)
        except ValueError:
            logger.warning(
                f"Document {document.id} has an unusable blob path {document.blob_path!r}, "
                f"removing row without blob cleanup",
                extra={"tenant_id": document.tenant_id, "document_id": str(document.id)},
            )
            return False

        deleted = await self.blob_store.delete(container, name)
        if not deleted:
            logger.warning(
                f"Blob {document.blob_path} already absent while permanently deleting "
                f"document {document.id}",
                extra={"tenant_id": document.tenant_id, "document_id": str(document.id)},
            )
        return deleted
