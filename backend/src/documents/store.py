"""Document store - persistence over the document table

DocumentStore is the single source of truth for reads and writes of Document
rows and for the lifecycle transition guards. Reads return None or an empty
list for absent ids. Writes on an absent id raise DocumentNotFoundError and
invalid transitions raise StateConflictError.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, false, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.documents.errors import DocumentNotFoundError, StateConflictError
from domain.documents.lifecycle_state import (
    LifecycleAction,
    can_transition,
    flags_for,
    get_allowed_actions,
    next_state,
)
from models.base import utcnow
from models.document import Document

logger = logging.getLogger(__name__)

# Index entry missing, or older than the last change
_STALE = or_(
    Document.last_indexed_at.is_(None),
    and_(
        Document.updated_at.is_not(None),
        Document.updated_at > Document.last_indexed_at,
    ),
)

_LINEAGE_CONSTRAINTS = (
    "uq_document_current_per_lineage",
    "uq_document_lineage_version",
    "lineage_key",
)


class DocumentStore:
    """Async repository for Document rows.

    The store is bound to one AsyncSession and never commits: the caller's
    unit of work (see database.TransactionRunner) owns the transaction.

    Tenant scope comes from ``tenant_id`` or from ``session.info["tenant_id"]``
    (set by tenant_scoped_session / TransactionRunner). When a scope is
    present every query is filtered by it, so ids from another tenant behave
    exactly like absent ids.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.tenant_id = tenant_id if tenant_id is not None else session.info.get("tenant_id")
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _scoped(self, query):
        if self.tenant_id is not None:
            query = query.where(Document.tenant_id == self.tenant_id)
        return query

    def _outside_scope(self, tenant_id: int) -> bool:
        return self.tenant_id is not None and tenant_id != self.tenant_id

    @staticmethod
    def _with_flags(query, include_deleted: bool, include_archived: bool):
        if not include_deleted:
            query = query.where(Document.is_deleted == false())
        if not include_archived:
            query = query.where(Document.is_archived == false())
        return query

    async def get_by_id(
        self,
        document_id: UUID,
        include_deleted: bool = True,
        include_archived: bool = True,
    ) -> Optional[Document]:
        """Get a document.

        By default the row is returned regardless of its lifecycle flags;
        pass ``include_deleted=False`` / ``include_archived=False`` to treat
        soft-deleted or archived rows as absent.
        """
        query = self._scoped(select(Document).where(Document.id == document_id))
        query = self._with_flags(query, include_deleted, include_archived)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_by_tenant(
        self,
        tenant_id: int,
        include_deleted: bool = False,
        include_archived: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """List documents of a tenant, newest first.

        Args:
            tenant_id: Tenant to list
            include_deleted: Include soft-deleted rows (excluded by default)
            include_archived: Include archived rows (included by default)
            offset: Number of rows to skip
            limit: Maximum number of rows (all when None)
        """
        if self._outside_scope(tenant_id):
            return []

        query = select(Document).where(Document.tenant_id == tenant_id)
        query = self._with_flags(query, include_deleted, include_archived)
        query = query.order_by(Document.created_at.desc(), Document.version.desc(), Document.id)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_by_document_type(
        self,
        document_type_id: int,
        include_deleted: bool = False,
        include_archived: bool = True,
    ) -> List[Document]:
        query = self._scoped(select(Document).where(Document.document_type_id == document_type_id))
        query = self._with_flags(query, include_deleted, include_archived)
        query = query.order_by(Document.created_at.desc(), Document.version.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_current_version(
        self,
        lineage_root_id: UUID,
        include_deleted: bool = False,
    ) -> Optional[Document]:
        """Get the row flagged current for a lineage.

        Returns None when the lineage has no current row, or when the current
        row is soft-deleted and ``include_deleted`` is False.
        """
        query = self._scoped(
            select(Document).where(
                and_(
                    Document.lineage_key == lineage_root_id,
                    Document.is_current_version.is_(True),
                )
            )
        )
        if not include_deleted:
            query = query.where(Document.is_deleted == false())

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_versions(self, lineage_root_id: UUID) -> List[Document]:
        """List every row of a lineage (root included), highest version first."""
        query = self._scoped(
            select(Document)
            .where(Document.lineage_key == lineage_root_id)
            .order_by(Document.version.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def max_version(self, lineage_root_id: UUID) -> int:
        """Highest version number in a lineage, 0 when the lineage is empty."""
        query = self._scoped(
            select(func.max(Document.version)).where(Document.lineage_key == lineage_root_id)
        )
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def list_by_content_hash(
        self,
        content_hash: str,
        tenant_id: int,
        include_deleted: bool = True,
    ) -> List[Document]:
        """List documents of a tenant whose content hash equals ``content_hash``."""
        if not content_hash or not content_hash.strip() or self._outside_scope(tenant_id):
            return []

        query = select(Document).where(
            and_(
                Document.tenant_id == tenant_id,
                Document.content_hash == content_hash,
            )
        )
        if not include_deleted:
            query = query.where(Document.is_deleted == false())
        query = query.order_by(Document.created_at.desc(), Document.version.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_needing_indexing(self, limit: Optional[int] = None) -> List[Document]:
        """List documents whose search index entry is missing or stale.

        A row qualifies when ``last_indexed_at`` is null, or ``updated_at`` is
        set and later than ``last_indexed_at``. Document type indexability is
        not checked here (see documents.indexing). Read-only.
        """
        query = self._scoped(select(Document).where(_STALE)).order_by(
            Document.created_at, Document.id
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, tenant_id: int, include_deleted: bool = False) -> int:
        if self._outside_scope(tenant_id):
            return 0

        query = select(func.count(Document.id)).where(Document.tenant_id == tenant_id)
        if not include_deleted:
            query = query.where(Document.is_deleted == false())

        result = await self.session.execute(query)
        return result.scalar() or 0

    async def index_stats(self) -> Tuple[int, int, int]:
        """Count live current versions: total, indexed, needing indexing.

        Document type indexability is not checked here.
        """
        live = and_(Document.is_deleted == false(), Document.is_current_version.is_(True))
        query = self._scoped(
            select(
                func.count(Document.id),
                func.count(Document.last_indexed_at),
                func.count(Document.id).filter(_STALE),
            ).where(live)
        )
        result = await self.session.execute(query)
        total, indexed, stale = result.one()
        return total or 0, indexed or 0, stale or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, document: Document) -> Document:
        """Insert a new row.

        Assigns the id and lineage key and stamps ``created_at``. A lineage
        constraint violation (duplicate version or a second current row)
        raises StateConflictError; any other integrity error propagates.
        """
        if document.tenant_id is None:
            document.tenant_id = self.tenant_id
        if document.tenant_id is None:
            raise StateConflictError("Document has no tenant and the store is not tenant scoped")
        if self._outside_scope(document.tenant_id):
            raise StateConflictError(
                f"Document belongs to tenant {document.tenant_id}, "
                f"store is scoped to tenant {self.tenant_id}"
            )

        if document.id is None:
            document.id = uuid.uuid4()
        document.lineage_key = document.lineage_root_id or document.id
        if document.version is None:
            document.version = 1
        if document.is_current_version is None:
            document.is_current_version = True
        if document.is_deleted is None:
            document.is_deleted = False
        if document.is_archived is None:
            document.is_archived = False
        document.created_at = self.clock()

        self.session.add(document)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if not any(name in str(e.orig) for name in _LINEAGE_CONSTRAINTS):
                logger.error(
                    f"Integrity error while adding document {document.id}: {e.orig}",
                    extra={"tenant_id": document.tenant_id},
                )
                raise
            logger.warning(
                f"Lineage constraint violated while adding document {document.id}: {e.orig}",
                extra={"tenant_id": document.tenant_id, "lineage_root_id": str(document.lineage_key)},
            )
            raise StateConflictError(
                f"Concurrent change on lineage {document.lineage_key}, "
                f"version {document.version} could not be added",
                document_id=document.lineage_key,
            ) from e

        return document

    async def update(self, document: Document) -> Document:
        """Persist changes made to a loaded document and stamp ``updated_at``."""
        if self._outside_scope(document.tenant_id):
            raise DocumentNotFoundError(document.id)

        document.updated_at = self.clock()
        await self.session.flush()
        return document

    async def clear_current_flag(self, lineage_root_id: UUID) -> int:
        """Clear ``is_current_version`` on every row of a lineage.

        Returns:
            Number of rows changed
        """
        statement = (
            update(Document)
            .where(
                and_(
                    Document.lineage_key == lineage_root_id,
                    Document.is_current_version.is_(True),
                )
            )
            .values(is_current_version=False, updated_at=self.clock())
            .execution_options(synchronize_session="fetch")
        )
        if self.tenant_id is not None:
            statement = statement.where(Document.tenant_id == self.tenant_id)

        result = await self.session.execute(statement)
        return result.rowcount

    async def record_indexed(
        self,
        document_id: UUID,
        search_index_id: str,
        indexed_at: Optional[datetime] = None,
    ) -> Document:
        """Record a successful index of a document.

        Sets ``search_index_id`` and ``last_indexed_at`` without advancing
        ``updated_at``, so the row drops out of list_needing_indexing until
        its next content or metadata change.
        """
        document = await self._load_for_update(document_id)
        document.search_index_id = search_index_id
        document.last_indexed_at = indexed_at or self.clock()
        await self.session.flush()
        return document

    async def reset_index_state(self) -> int:
        """Forget every recorded index entry in scope.

        Clears ``search_index_id`` and ``last_indexed_at`` so every row
        becomes a reconciliation candidate again. ``updated_at`` is left
        untouched.

        Returns:
            Number of rows changed
        """
        statement = (
            update(Document)
            .where(
                or_(
                    Document.last_indexed_at.is_not(None),
                    Document.search_index_id.is_not(None),
                )
            )
            .values(last_indexed_at=None, search_index_id=None)
            .execution_options(synchronize_session="fetch")
        )
        if self.tenant_id is not None:
            statement = statement.where(Document.tenant_id == self.tenant_id)

        result = await self.session.execute(statement)
        return result.rowcount

    async def remove(self, document: Document) -> None:
        """Delete the row. Only used by permanent deletion."""
        await self.session.delete(document)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def _load_for_update(self, document_id: UUID) -> Document:
        query = self._scoped(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        document = result.scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def lock(self, document_id: UUID) -> Document:
        """Load a row FOR UPDATE, raising DocumentNotFoundError when absent."""
        return await self._load_for_update(document_id)

    async def _transition(self, document_id: UUID, action: LifecycleAction) -> Document:
        document = await self._load_for_update(document_id)
        state = document.lifecycle_state

        if not can_transition(state, action):
            allowed = ", ".join(a.value for a in get_allowed_actions(state))
            raise StateConflictError(
                f"Cannot apply {action.value} to document {document_id} in state "
                f"{state.value} (allowed: {allowed})",
                document_id=document_id,
            )

        document.is_deleted, document.is_archived = flags_for(next_state(state, action))
        return document

    async def soft_delete(
        self,
        document_id: UUID,
        deleted_by: Optional[str],
        reason: Optional[str] = None,
    ) -> Document:
        """Mark a document deleted and stamp the deletion audit fields.

        Raises:
            DocumentNotFoundError: If the document does not exist
            StateConflictError: If the document is already deleted
        """
        document = await self._transition(document_id, LifecycleAction.SOFT_DELETE)
        document.deleted_at = self.clock()
        document.deleted_by = deleted_by
        document.deleted_reason = reason
        return await self.update(document)

    async def restore(self, document_id: UUID) -> Document:
        """Undo a soft delete and clear the deletion audit fields."""
        document = await self._transition(document_id, LifecycleAction.RESTORE)
        document.deleted_at = None
        document.deleted_by = None
        document.deleted_reason = None
        return await self.update(document)

    async def archive(self, document_id: UUID) -> Document:
        document = await self._transition(document_id, LifecycleAction.ARCHIVE)
        document.archived_at = self.clock()
        return await self.update(document)

    async def unarchive(self, document_id: UUID) -> Document:
        document = await self._transition(document_id, LifecycleAction.UNARCHIVE)
        document.archived_at = None
        return await self.update(document)
