"""Version chain management for document lineages

A lineage is flat: every revision points at the lineage root, never at its
immediate predecessor. Creating a version clears the previous current flag
and inserts the new row inside one unit of work, serialized per lineage.

Serialization has two layers:
- LineageLocks: an in-process asyncio.Lock per lineage root, held for the
  whole unit of work (including retries)
- the partial unique index ``uq_document_current_per_lineage`` plus the
  row lock on the current version, for writers in other processes
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

from database import TransactionRunner
from domain.documents.errors import DocumentNotFoundError, StateConflictError
from models.base import utcnow
from models.document import Document

from .store import DocumentStore

logger = logging.getLogger(__name__)


class LineageLocks:
    """Registry of asyncio locks keyed by lineage root id.

    Locks are held weakly and disappear once no coroutine holds or waits on
    them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, lineage_root_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(lineage_root_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lineage_root_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, lineage_root_id: UUID) -> AsyncIterator[None]:
        lock = self.lock_for(lineage_root_id)
        async with lock:
            yield


@dataclass
class VersionDraft:
    """Content and descriptive fields of a version about to be created.

    ``None`` descriptive fields are inherited from the previous current row.
    """
    blob_path: str
    original_file_name: str
    mime_type: str
    content_hash: Optional[str] = None
    file_size_bytes: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    metadata_json: Optional[str] = None
    tags: Optional[str] = None
    created_by: Optional[str] = None


class VersionChainManager:
    """Allocates version numbers and moves the current-version marker.

    Example:
        manager = VersionChainManager(runner, LineageLocks())
        version = await manager.create_version(
            tenant_id=5,
            document_id=root.id,
            draft=VersionDraft(blob_path=..., original_file_name='v2.pdf', mime_type='application/pdf'),
        )
    """

    def __init__(
        self,
        runner: TransactionRunner,
        locks: Optional[LineageLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.runner = runner
        self.locks = locks or LineageLocks()
        self.clock = clock

    async def resolve_root_id(self, tenant_id: int, document_id: UUID) -> UUID:
        """Resolve the lineage root id from any member of the lineage.

        Raises:
            DocumentNotFoundError: If the document does not exist in the tenant
        """
        async def _resolve(session):
            document = await DocumentStore(session, tenant_id, self.clock).get_by_id(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            return document.root_id

        return await self.runner.run(_resolve, tenant_id=tenant_id)

    async def create_version(
        self,
        tenant_id: int,
        document_id: UUID,
        draft: VersionDraft,
    ) -> Document:
        """Create the next version of the lineage containing ``document_id``.

        Raises:
            DocumentNotFoundError: If the document does not exist in the tenant
            StateConflictError: If the lineage has no current version, the
                current version is soft-deleted, or a concurrent writer won
        """
        lineage_root_id = await self.resolve_root_id(tenant_id, document_id)

        async def _create(session):
            store = DocumentStore(session, tenant_id, self.clock)
            return await self.append_version(store, lineage_root_id, draft)

        async with self.locks.hold(lineage_root_id):
            document = await self.runner.run(_create, tenant_id=tenant_id)

        logger.info(
            f"Created version {document.version} of lineage {lineage_root_id}",
            extra={
                "tenant_id": tenant_id,
                "document_id": str(document.id),
                "lineage_root_id": str(lineage_root_id),
            },
        )
        return document

    async def append_version(
        self,
        store: DocumentStore,
        lineage_root_id: UUID,
        draft: VersionDraft,
    ) -> Document:
        """Flip the current flag and insert the new row using ``store``'s transaction.

        Callers must hold the lineage lock and commit (or roll back) both
        writes together.
        """
        current = await store.get_current_version(lineage_root_id, include_deleted=True)
        if current is None:
            raise StateConflictError(
                f"Lineage {lineage_root_id} has no current version",
                document_id=lineage_root_id,
            )

        # Row lock on the current version serializes writers in other processes
        current = await store.lock(current.id)
        if not current.is_current_version:
            raise StateConflictError(
                f"Current version of lineage {lineage_root_id} changed concurrently",
                document_id=lineage_root_id,
            )
        if current.is_deleted:
            raise StateConflictError(
                f"Cannot create a version of lineage {lineage_root_id}: "
                f"current version {current.version} is deleted",
                document_id=current.id,
            )

        root = await store.get_by_id(lineage_root_id) or current
        next_version = await store.max_version(lineage_root_id) + 1

        await store.clear_current_flag(lineage_root_id)

        document = Document(
            tenant_id=root.tenant_id,
            document_type_id=root.document_type_id,
            lineage_root_id=lineage_root_id,
            version=next_version,
            is_current_version=True,
            content_hash=draft.content_hash,
            blob_path=draft.blob_path,
            mime_type=draft.mime_type,
            file_size_bytes=draft.file_size_bytes,
            original_file_name=draft.original_file_name,
            title=draft.title if draft.title is not None else current.title,
            description=draft.description if draft.description is not None else current.description,
            metadata_json=draft.metadata_json if draft.metadata_json is not None else current.metadata_json,
            tags=draft.tags if draft.tags is not None else current.tags,
            created_by=draft.created_by,
        )
        return await store.add(document)
