"""Document repository core - store, versioning, lifecycle, deduplication and indexing"""

from .store import DocumentStore
from .versioning import LineageLocks, VersionChainManager, VersionDraft
from .lifecycle import DocumentLifecycle, PermanentDeletionResult
from .deduplication import DuplicateFinder
from .indexing import IndexingReadinessTracker, IndexReconciler, needs_indexing
from .schemas import (
    CreateDocumentRequest,
    CreateVersionRequest,
    UpdateDocumentRequest,
    IndexReconciliationReport,
    IndexingFailure,
    IndexStats,
)
from .service import DocumentService, DocumentDownload, TemporaryAccessLink

__all__ = [
    "DocumentStore",
    "LineageLocks",
    "VersionChainManager",
    "VersionDraft",
    "DocumentLifecycle",
    "PermanentDeletionResult",
    "DuplicateFinder",
    "IndexingReadinessTracker",
    "IndexReconciler",
    "needs_indexing",
    "CreateDocumentRequest",
    "CreateVersionRequest",
    "UpdateDocumentRequest",
    "IndexReconciliationReport",
    "IndexingFailure",
    "IndexStats",
    "DocumentService",
    "DocumentDownload",
    "TemporaryAccessLink",
]
