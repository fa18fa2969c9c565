"""Indexing readiness and search index reconciliation

A document needs (re)indexing when it was never indexed, or when it changed
after its last successful index, and its document type takes part in content
indexing. Two cooperating paths keep the index fresh:
- best-effort indexing right after a write (DocumentService)
- IndexReconciler, run periodically, which re-reads persisted state and
  recovers whatever the synchronous path missed

Both are idempotent; they share nothing but the database.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import UUID

from database import TransactionRunner
from domain.documents.errors import DocumentNotFoundError
from domain.documents.ports.document_type_port import DocumentTypeCapabilityPort
from domain.documents.ports.search_indexer_port import SearchIndexerPort
from models.base import utcnow
from models.document import Document

from .schemas import IndexReconciliationReport, IndexStats
from .store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


def needs_indexing(document: Document) -> bool:
    """Whether a document's index entry is missing or stale.

    Example:
        >>> needs_indexing(Document(last_indexed_at=None))
        True
    """
    if document.last_indexed_at is None:
        return True
    return document.updated_at is not None and document.updated_at > document.last_indexed_at


class IndexingReadinessTracker:
    """Decides which documents must be sent to the search indexer."""

    def __init__(self, capabilities: DocumentTypeCapabilityPort):
        self.capabilities = capabilities

    async def list_needing_indexing(
        self,
        store: DocumentStore,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Stale documents whose type is indexable. Read-only.

        Soft-deleted and archived documents are included: their index entry
        carries the lifecycle flags and must follow them.
        """
        indexable: Dict[int, bool] = {}
        result = []
        for document in await store.list_needing_indexing():
            type_id = document.document_type_id
            if type_id not in indexable:
                indexable[type_id] = await self.capabilities.is_indexable(type_id)
            if indexable[type_id]:
                result.append(document)
                if limit is not None and len(result) >= limit:
                    break
        return result

    async def is_indexable(self, document: Document) -> bool:
        return await self.capabilities.is_indexable(document.document_type_id)

    async def record_indexed(
        self,
        store: DocumentStore,
        document_id: UUID,
        search_index_id: str,
        indexed_at: Optional[datetime] = None,
    ) -> Document:
        """Record index completion without advancing ``updated_at``."""
        return await store.record_indexed(document_id, search_index_id, indexed_at)


class IndexReconciler:
    """Periodic reconciliation between the document table and the search index.

    Each pass:
    1. Takes a snapshot time and reads every document needing indexing
    2. Pushes them to the indexer in batches
    3. Records completion with the snapshot time as ``last_indexed_at``, so an
       edit made while the pass runs keeps the document stale for the next pass

    Failures are per document: a rejected batch or a document deleted
    mid-pass is reported and the pass continues.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        indexer: SearchIndexerPort,
        tracker: IndexingReadinessTracker,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.runner = runner
        self.indexer = indexer
        self.tracker = tracker
        self.batch_size = max(1, batch_size)
        self.clock = clock

    async def stats(self, tenant_id: Optional[int] = None) -> IndexStats:
        """Indexing coverage of live current versions (all tenants when None)."""
        total, indexed, stale = await self.runner.run(
            lambda session: DocumentStore(session, tenant_id, self.clock).index_stats(),
            tenant_id=tenant_id,
        )
        return IndexStats(
            total_documents=total,
            indexed_documents=indexed,
            documents_needing_indexing=stale,
            retrieved_at=self.clock(),
        )

    async def reset(self, tenant_id: Optional[int] = None) -> int:
        """Forget recorded index state so the next pass re-indexes everything."""
        count = await self.runner.run(
            lambda session: DocumentStore(session, tenant_id, self.clock).reset_index_state(),
            tenant_id=tenant_id,
        )
        logger.warning(
            f"Reset index state of {count} documents",
            extra={"tenant_id": tenant_id},
        )
        return count

    async def clear_index(self) -> int:
        """Empty the search index and reset the index state of every row.

        The rows are only reset once the indexer confirmed the clear; a
        failing indexer leaves the recorded state untouched.

        Returns:
            Number of rows whose index state was reset
        """
        await self.indexer.clear()
        return await self.reset()

    async def run_once(
        self,
        tenant_id: Optional[int] = None,
        limit: Optional[int] = None,
        full: bool = False,
    ) -> IndexReconciliationReport:
        """Run one reconciliation pass.

        Args:
            tenant_id: Restrict the pass to one tenant (all tenants when None)
            limit: Maximum number of documents to process
            full: Reset the recorded index state first, so every indexable
                document is pushed again
        """
        reset = await self.reset(tenant_id) if full else 0

        snapshot_at = self.clock()
        report = IndexReconciliationReport(started_at=snapshot_at, full=full, reset=reset)

        candidates = await self.runner.run(
            lambda session: self.tracker.list_needing_indexing(
                DocumentStore(session, tenant_id, self.clock), limit=limit
            ),
            tenant_id=tenant_id,
        )
        report.candidates = len(candidates)
        logger.info(
            f"Index reconciliation found {len(candidates)} documents needing indexing",
            extra={"tenant_id": tenant_id},
        )

        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            report.batches += 1
            await self._process_batch(batch, snapshot_at, report)

        report.completed_at = self.clock()
        log = logger.warning if report.has_errors else logger.info
        log(
            f"Index reconciliation completed: {report.indexed} indexed, "
            f"{report.failed} failed out of {report.candidates}",
            extra={"tenant_id": tenant_id},
        )
        return report

    async def _process_batch(
        self,
        batch: List[Document],
        snapshot_at: datetime,
        report: IndexReconciliationReport,
    ) -> None:
        try:
            accepted = await self.indexer.index_batch(batch)
        except Exception as e:
            logger.error(f"Indexer rejected batch of {len(batch)} documents: {e}", exc_info=True)
            for document in batch:
                report.add_error(document.id, f"Batch indexing failed: {e}")
            return

        to_record = []
        for document in batch:
            index_id = accepted.get(document.id)
            if index_id:
                to_record.append((document, index_id))
            else:
                report.add_error(document.id, "Not accepted by the indexer")

        if not to_record:
            return

        async def _record(session) -> List[UUID]:
            removed = []
            for document, index_id in to_record:
                store = DocumentStore(session, document.tenant_id, self.clock)
                try:
                    await self.tracker.record_indexed(store, document.id, index_id, snapshot_at)
                except DocumentNotFoundError:
                    removed.append(document.id)
            return removed

        try:
            removed = await self.runner.run(_record)
            for document_id in removed:
                report.add_error(document_id, "Document removed before completion was recorded")
            report.indexed += len(to_record) - len(removed)
        except Exception as e:
            logger.error(f"Failed to record index completion for batch: {e}", exc_info=True)
            for document, _ in to_record:
                report.add_error(document.id, f"Recording index completion failed: {e}")
