"""Document service - use cases of the document repository core

DocumentService composes the store, version chain manager, lifecycle and
indexing readiness tracker with the blob store and search indexer:

- create_document: upload content, persist the lineage root, index best-effort
- create_version: upload content, append a version, index best-effort
- download / issue_temporary_access_link: resolve a version, read from blob store
- soft_delete / restore / archive / unarchive / permanently_delete

Uploads happen before the database transaction. When the transaction fails
the freshly uploaded object is removed again (best-effort). Synchronous
indexing never fails a write; IndexReconciler recovers what it misses.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional
from uuid import UUID

from database import TransactionRunner
from domain.documents.errors import (
    DocumentNotFoundError,
    DocumentValidationError,
    DuplicateContentError,
    StateConflictError,
)
from domain.documents.ports.document_type_port import DocumentTypeCapabilityPort
from domain.documents.ports.object_storage_port import (
    ObjectStoragePort,
    StoredBlob,
    split_blob_path,
)
from domain.documents.ports.search_indexer_port import SearchIndexerPort
from domain.documents.validation import (
    MAX_FILE_SIZE,
    clamp_access_link_ttl,
    require_valid,
    validate_file_size,
    validate_title,
)
from models.base import utcnow
from models.document import Document

from .deduplication import DuplicateFinder
from .indexing import IndexingReadinessTracker
from .lifecycle import DocumentLifecycle, PermanentDeletionResult
from .schemas import CreateDocumentRequest, CreateVersionRequest, UpdateDocumentRequest
from .store import DocumentStore
from .versioning import LineageLocks, VersionChainManager, VersionDraft

logger = logging.getLogger(__name__)


@dataclass
class DocumentDownload:
    """A resolved document version and an open stream of its content.

    The caller is responsible for closing ``stream``.
    """
    document: Document
    stream: BinaryIO


@dataclass
class TemporaryAccessLink:
    """Time-limited URL to a document's content."""
    document_id: UUID
    url: str
    ttl: timedelta
    expires_at: datetime


class DocumentService:
    """Tenant-scoped document use cases.

    Every method takes the caller's tenant id; documents of other tenants
    behave exactly like absent documents.

    Example:
        service = DocumentService(runner, blob_store, indexer, capabilities)
        with open('contract.pdf', 'rb') as f:
            document = await service.create_document(
                CreateDocumentRequest(
                    tenant_id=5,
                    document_type_id=1,
                    title='Contract',
                    original_file_name='contract.pdf',
                    mime_type='application/pdf',
                ),
                f,
            )
    """

    def __init__(
        self,
        runner: TransactionRunner,
        blob_store: ObjectStoragePort,
        indexer: Optional[SearchIndexerPort] = None,
        capabilities: Optional[DocumentTypeCapabilityPort] = None,
        container: str = "documents",
        locks: Optional[LineageLocks] = None,
        clock: Callable[[], datetime] = utcnow,
        indexing_enabled: bool = True,
        reject_duplicates: bool = False,
        max_upload_size: Optional[int] = None,
        default_link_ttl: timedelta = timedelta(minutes=60),
    ):
        self.runner = runner
        self.blob_store = blob_store
        self.indexer = indexer
        self.tracker = IndexingReadinessTracker(capabilities) if capabilities else None
        self.container = container
        self.clock = clock
        self.indexing_enabled = indexing_enabled
        self.reject_duplicates = reject_duplicates
        self.max_upload_size = max_upload_size or MAX_FILE_SIZE
        self.default_link_ttl = default_link_ttl
        self.versions = VersionChainManager(runner, locks, clock)
        self.lifecycle = DocumentLifecycle(runner, blob_store, clock)

    def _store(self, session, tenant_id: int) -> DocumentStore:
        return DocumentStore(session, tenant_id, self.clock)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_document(self, request: CreateDocumentRequest, content: BinaryIO) -> Document:
        """Upload content and create the root (version 1) of a new lineage.

        Raises:
            DocumentValidationError: If the content is empty or too large
            DuplicateContentError: If ``reject_duplicates`` is set and the
                tenant already has a live document with the same content hash
            StorageError: If the upload fails
        """
        stored = await self._upload(request.tenant_id, request.original_file_name, request.mime_type, content)
        content_hash = request.content_hash or stored.sha256

        async def _create(session) -> Document:
            store = self._store(session, request.tenant_id)
            if self.reject_duplicates:
                duplicates = await DuplicateFinder(store).find_duplicates(
                    content_hash, request.tenant_id, include_deleted=False
                )
                if duplicates:
                    logger.warning(
                        f"Document with content hash {content_hash} already exists",
                        extra={"tenant_id": request.tenant_id, "document_id": str(duplicates[0].id)},
                    )
                    raise DuplicateContentError(content_hash, duplicates[0].id)

            document = Document(
                tenant_id=request.tenant_id,
                document_type_id=request.document_type_id,
                lineage_root_id=None,
                version=1,
                is_current_version=True,
                content_hash=content_hash,
                blob_path=stored.blob_path,
                mime_type=request.mime_type,
                file_size_bytes=stored.size_bytes,
                original_file_name=request.original_file_name,
                title=request.title,
                description=request.description,
                metadata_json=request.metadata,
                tags=request.tags,
                created_by=request.created_by,
            )
            return await store.add(document)

        try:
            document = await self.runner.run(_create, tenant_id=request.tenant_id)
        except Exception:
            await self._discard_blob(stored)
            raise

        logger.info(
            f"Created document {document.id}",
            extra={"tenant_id": document.tenant_id, "document_id": str(document.id)},
        )
        return await self._index_best_effort(document)

    async def create_version(
        self,
        tenant_id: int,
        document_id: UUID,
        request: CreateVersionRequest,
        content: BinaryIO,
    ) -> Document:
        """Upload content and append a new version to the lineage of ``document_id``.

        ``document_id`` may be the root or any other member of the lineage.

        Raises:
            DocumentNotFoundError: If the document does not exist in the tenant
            StateConflictError: If the current version is deleted or a
                concurrent writer won
        """
        stored = await self._upload(tenant_id, request.original_file_name, request.mime_type, content)
        draft = VersionDraft(
            blob_path=stored.blob_path,
            original_file_name=request.original_file_name,
            mime_type=request.mime_type,
            content_hash=request.content_hash or stored.sha256,
            file_size_bytes=stored.size_bytes,
            title=request.title,
            description=request.description,
            metadata_json=request.metadata,
            tags=request.tags,
            created_by=request.created_by,
        )

        try:
            document = await self.versions.create_version(tenant_id, document_id, draft)
        except Exception:
            await self._discard_blob(stored)
            raise

        return await self._index_best_effort(document)

    async def update_document(
        self,
        tenant_id: int,
        document_id: UUID,
        request: UpdateDocumentRequest,
    ) -> Document:
        """Apply the fields set on ``request`` to a live document.

        Raises:
            DocumentNotFoundError: If the document does not exist in the tenant
            StateConflictError: If the document is soft-deleted
        """
        changes = request.model_dump(exclude_unset=True)
        updated_by = changes.pop("updated_by", None)
        if "metadata" in changes:
            changes["metadata_json"] = changes.pop("metadata")
        if "title" in changes:
            require_valid(validate_title(changes["title"]))

        async def _update(session) -> Document:
            store = self._store(session, tenant_id)
            document = await store.lock(document_id)
            if document.is_deleted:
                raise StateConflictError(
                    f"Cannot update deleted document {document_id}",
                    document_id=document_id,
                )
            for field, value in changes.items():
                setattr(document, field, value)
            document.updated_by = updated_by
            return await store.update(document)

        document = await self.runner.run(_update, tenant_id=tenant_id)
        logger.info(
            f"Updated document {document_id}: {sorted(changes)}",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return await self._index_best_effort(document)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(
        self,
        tenant_id: int,
        document_id: UUID,
        include_deleted: bool = True,
        include_archived: bool = True,
    ) -> Optional[Document]:
        return await self.runner.run(
            lambda session: self._store(session, tenant_id).get_by_id(
                document_id, include_deleted=include_deleted, include_archived=include_archived
            ),
            tenant_id=tenant_id,
        )

    async def list_documents(
        self,
        tenant_id: int,
        include_deleted: bool = False,
        include_archived: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """One page of a tenant's documents, newest first."""
        if offset < 0 or (limit is not None and limit < 1):
            raise DocumentValidationError("offset must be >= 0 and limit >= 1")

        return await self.runner.run(
            lambda session: self._store(session, tenant_id).list_by_tenant(
                tenant_id,
                include_deleted=include_deleted,
                include_archived=include_archived,
                offset=offset,
                limit=limit,
            ),
            tenant_id=tenant_id,
        )

    async def list_by_document_type(
        self,
        tenant_id: int,
        document_type_id: int,
        include_deleted: bool = False,
        include_archived: bool = True,
    ) -> List[Document]:
        return await self.runner.run(
            lambda session: self._store(session, tenant_id).list_by_document_type(
                document_type_id, include_deleted, include_archived
            ),
            tenant_id=tenant_id,
        )

    async def list_versions(self, tenant_id: int, document_id: UUID) -> List[Document]:
        """All versions of the lineage containing ``document_id``, newest first."""
        async def _list(session) -> List[Document]:
            store = self._store(session, tenant_id)
            document = await store.get_by_id(document_id)
            if document is None:
                return []
            return await store.list_versions(document.root_id)

        return await self.runner.run(_list, tenant_id=tenant_id)

    async def get_current_version(self, tenant_id: int, document_id: UUID) -> Optional[Document]:
        """Live current version of the lineage containing ``document_id``."""
        async def _current(session) -> Optional[Document]:
            store = self._store(session, tenant_id)
            document = await store.get_by_id(document_id)
            if document is None:
                return None
            return await store.get_current_version(document.root_id)

        return await self.runner.run(_current, tenant_id=tenant_id)

    async def count_documents(self, tenant_id: int, include_deleted: bool = False) -> int:
        return await self.runner.run(
            lambda session: self._store(session, tenant_id).count(tenant_id, include_deleted),
            tenant_id=tenant_id,
        )

    async def find_duplicates(
        self,
        tenant_id: int,
        content_hash: str,
        include_deleted: bool = True,
    ) -> List[Document]:
        return await self.runner.run(
            lambda session: DuplicateFinder(self._store(session, tenant_id)).find_duplicates(
                content_hash, tenant_id, include_deleted=include_deleted
            ),
            tenant_id=tenant_id,
        )

    # ------------------------------------------------------------------
    # Content access
    # ------------------------------------------------------------------

    async def _resolve_version(
        self,
        session,
        tenant_id: int,
        document_id: UUID,
        version: Optional[int],
    ) -> Document:
        store = self._store(session, tenant_id)
        document = await store.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        if version is None:
            target = await store.get_current_version(document.root_id)
        else:
            target = next(
                (d for d in await store.list_versions(document.root_id) if d.version == version),
                None,
            )

        if target is None or target.is_deleted:
            raise DocumentNotFoundError(document_id)
        return target

    async def download(
        self,
        tenant_id: int,
        document_id: UUID,
        version: Optional[int] = None,
    ) -> DocumentDownload:
        """Open the content of a document version.

        Args:
            tenant_id: Caller's tenant
            document_id: Any member of the lineage
            version: Version number to read; the lineage's current version when None

        Raises:
            DocumentNotFoundError: If the document, the requested version or
                its blob does not exist, or the version is deleted
        """
        document = await self.runner.run(
            lambda session: self._resolve_version(session, tenant_id, document_id, version),
            tenant_id=tenant_id,
        )

        container, name = split_blob_path(document.blob_path)
        try:
            stream = await self.blob_store.download(container, name)
        except FileNotFoundError as e:
            logger.error(
                f"Blob {document.blob_path} missing for document {document.id}",
                extra={"tenant_id": tenant_id, "document_id": str(document.id)},
            )
            raise DocumentNotFoundError(document.id) from e

        return DocumentDownload(document=document, stream=stream)

    async def issue_temporary_access_link(
        self,
        tenant_id: int,
        document_id: UUID,
        requested_ttl: Optional[timedelta] = None,
    ) -> TemporaryAccessLink:
        """Issue a time-limited URL to a document's content.

        The lifetime is clamped to 24 hours whatever the caller asks for.

        Raises:
            DocumentValidationError: If ``requested_ttl`` is not positive
            DocumentNotFoundError: If the document or its blob does not exist in
                the tenant
            StateConflictError: If the document is soft-deleted
        """
        ttl = clamp_access_link_ttl(requested_ttl if requested_ttl is not None else self.default_link_ttl)

        document = await self.get_document(tenant_id, document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        if document.is_deleted:
            raise StateConflictError(
                f"Cannot issue an access link for deleted document {document_id}",
                document_id=document_id,
            )

        container, name = split_blob_path(document.blob_path)
        issued_at = self.clock()
        try:
            url = await self.blob_store.issue_temporary_access_link(container, name, ttl)
        except FileNotFoundError as e:
            logger.error(
                f"Blob {document.blob_path} missing for document {document.id}",
                extra={"tenant_id": tenant_id, "document_id": str(document.id)},
            )
            raise DocumentNotFoundError(document.id) from e

        logger.info(
            f"Issued access link for document {document_id} valid for {int(ttl.total_seconds())}s",
            extra={"tenant_id": tenant_id, "document_id": str(document_id)},
        )
        return TemporaryAccessLink(
            document_id=document_id,
            url=url,
            ttl=ttl,
            expires_at=issued_at + ttl,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def soft_delete(
        self,
        tenant_id: int,
        document_id: UUID,
        deleted_by: Optional[str],
        reason: Optional[str] = None,
    ) -> Document:
        return await self.lifecycle.soft_delete(tenant_id, document_id, deleted_by, reason)

    async def restore(self, tenant_id: int, document_id: UUID) -> Document:
        return await self.lifecycle.restore(tenant_id, document_id)

    async def archive(self, tenant_id: int, document_id: UUID) -> Document:
        return await self.lifecycle.archive(tenant_id, document_id)

    async def unarchive(self, tenant_id: int, document_id: UUID) -> Document:
        return await self.lifecycle.unarchive(tenant_id, document_id)

    async def permanently_delete(self, tenant_id: int, document_id: UUID) -> PermanentDeletionResult:
        """Remove a document's blob and row, then its search index entry.

        The index entry is removed after commit and best-effort: a leftover
        entry refers to a row that no longer exists and is harmless.
        """
        result = await self.lifecycle.permanently_delete(tenant_id, document_id)

        if result.search_index_id and self.indexer is not None:
            try:
                await self.indexer.remove(result.search_index_id)
            except Exception as e:
                logger.warning(
                    f"Failed to remove index entry {result.search_index_id}: {e}",
                    extra={"tenant_id": tenant_id, "document_id": str(document_id)},
                )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _object_name(self, tenant_id: int, original_file_name: str) -> str:
        """Object name in format: {tenant_id}/{year}/{month}/{uuid}{ext}

        Every upload gets a fresh name, so two documents never share a blob
        even when their content is identical.
        """
        now = self.clock()
        ext = Path(original_file_name).suffix.lower()
        return f"{tenant_id}/{now.year}/{now.month:02d}/{uuid.uuid4().hex}{ext}"

    async def _upload(
        self,
        tenant_id: int,
        original_file_name: str,
        mime_type: str,
        content: BinaryIO,
    ) -> StoredBlob:
        name = self._object_name(tenant_id, original_file_name)
        try:
            stored = await self.blob_store.upload(self.container, name, content, mime_type)
        except ValueError as e:
            raise DocumentValidationError(str(e)) from e

        is_valid, message = validate_file_size(stored.size_bytes, self.max_upload_size)
        if not is_valid:
            await self._discard_blob(stored)
            require_valid((is_valid, message))
        return stored

    async def _discard_blob(self, stored: StoredBlob) -> None:
        try:
            await self.blob_store.delete(stored.container, stored.name)
        except Exception as e:
            logger.warning(f"Failed to remove orphaned blob {stored.blob_path}: {e}")

    async def _index_best_effort(self, document: Document) -> Document:
        """Index a document right after a write; never raises.

        Returns the document with its index bookkeeping when indexing
        succeeded, otherwise the document as given.
        """
        if not self.indexing_enabled or self.indexer is None or self.tracker is None:
            return document

        try:
            if not await self.tracker.is_indexable(document):
                return document

            indexed_at = self.clock()
            index_id = await self.indexer.index_one(document)
            if not index_id:
                logger.warning(
                    f"Indexer did not accept document {document.id}",
                    extra={"tenant_id": document.tenant_id, "document_id": str(document.id)},
                )
                return document

            return await self.runner.run(
                lambda session: self.tracker.record_indexed(
                    self._store(session, document.tenant_id), document.id, index_id, indexed_at
                ),
                tenant_id=document.tenant_id,
            )
        except Exception as e:
            logger.warning(
                f"Best-effort indexing failed for document {document.id}: {e}",
                extra={"tenant_id": document.tenant_id, "document_id": str(document.id)},
            )
            return document
