"""In-memory collaborators for document core tests.

Provides fakes for the ports of the document core:
- InMemoryBlobStore: ObjectStoragePort over a dict
- RecordingIndexer: SearchIndexerPort recording every call
- StaticTypeCapabilities: DocumentTypeCapabilityPort with a fixed answer set
- FakeClock: controllable clock for timestamp-sensitive tests

Usage:
    blob_store = InMemoryBlobStore()
    blob_store.put("documents", "5/a.pdf", b"%PDF")
    assert await blob_store.exists("documents", "5/a.pdf")
"""

import hashlib
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import BinaryIO, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from domain.documents.errors import SearchIndexError
from domain.documents.ports.document_type_port import DocumentTypeCapabilityPort
from domain.documents.ports.object_storage_port import ObjectStoragePort, StoredBlob
from domain.documents.ports.search_indexer_port import SearchIndexerPort
from infrastructure.search.meilisearch_indexer import index_id_for
from models.document import Document

CONTAINER = "documents"
CONTRACT_TYPE_ID = 1
SCAN_TYPE_ID = 2


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryBlobStore(ObjectStoragePort):
    """Blob store keeping objects in memory."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.issued_links: List[Tuple[str, str, timedelta]] = []
        self.delete_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None

    def put(self, container: str, name: str, content: bytes, content_type: str = "application/octet-stream"):
        self.objects[(container, name)] = (content, content_type)

    def content_of(self, blob_path: str) -> Optional[bytes]:
        container, _, name = blob_path.partition("/")
        stored = self.objects.get((container, name))
        return stored[0] if stored else None

    async def upload(self, container: str, name: str, stream: BinaryIO, content_type: str) -> StoredBlob:
        if self.upload_error is not None:
            raise self.upload_error
        content = stream.read()
        if not content:
            raise ValueError("Cannot store empty content")
        self.put(container, name, content, content_type)
        return StoredBlob(
            uri=f"memory://{container}/{name}",
            container=container,
            name=name,
            size_bytes=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )

    async def download(self, container: str, name: str) -> BinaryIO:
        if (container, name) not in self.objects:
            raise FileNotFoundError(f"Object not found: {container}/{name}")
        return BytesIO(self.objects[(container, name)][0])

    async def delete(self, container: str, name: str) -> bool:
        if self.delete_error is not None:
            raise self.delete_error
        return self.objects.pop((container, name), None) is not None

    async def exists(self, container: str, name: str) -> bool:
        return (container, name) in self.objects

    async def issue_temporary_access_link(self, container: str, name: str, ttl: timedelta) -> str:
        if (container, name) not in self.objects:
            raise FileNotFoundError(f"Object not found: {container}/{name}")
        self.issued_links.append((container, name, ttl))
        return f"memory://{container}/{name}?expires_in={int(ttl.total_seconds())}"


class RecordingIndexer(SearchIndexerPort):
    """Indexer that accepts everything except ``rejected_ids``."""

    def __init__(self):
        self.entries: Dict[str, UUID] = {}
        self.batches: List[List[UUID]] = []
        self.removed: List[str] = []
        self.updated: List[UUID] = []
        self.rejected_ids: set = set()
        self.fail_batches: bool = False
        self.cleared = 0

    async def index_one(self, document) -> Optional[str]:
        result = await self.index_batch([document])
        return result.get(document.id)

    async def index_batch(self, documents: Sequence) -> Dict[UUID, str]:
        if self.fail_batches:
            raise SearchIndexError("indexer unavailable", status_code=503)
        self.batches.append([d.id for d in documents])
        result = {}
        for document in documents:
            if document.id in self.rejected_ids:
                continue
            index_id = index_id_for(document)
            self.entries[index_id] = document.id
            result[document.id] = index_id
        return result

    async def remove(self, index_id: str) -> None:
        self.removed.append(index_id)
        self.entries.pop(index_id, None)

    async def update(self, document) -> None:
        self.updated.append(document.id)

    async def clear(self) -> None:
        if self.fail_batches:
            raise SearchIndexError("indexer unavailable", status_code=503)
        self.cleared += 1
        self.entries.clear()


class StaticTypeCapabilities(DocumentTypeCapabilityPort):
    """Every type is indexable except those listed."""

    def __init__(self, not_indexable: Iterable[int] = ()):
        self.not_indexable = set(not_indexable)
        self.lookups: List[int] = []

    async def is_indexable(self, document_type_id: int) -> bool:
        self.lookups.append(document_type_id)
        return document_type_id not in self.not_indexable


def new_document(
    tenant_id: int = 5,
    title: str = "Quarterly report",
    content_hash: Optional[str] = None,
    document_type_id: int = CONTRACT_TYPE_ID,
    blob_path: Optional[str] = None,
    **fields,
) -> Document:
    """Build an unsaved lineage root row."""
    return Document(
        tenant_id=tenant_id,
        document_type_id=document_type_id,
        title=title,
        content_hash=content_hash,
        blob_path=blob_path or f"{CONTAINER}/{tenant_id}/{title.replace(' ', '_').lower()}.pdf",
        mime_type="application/pdf",
        original_file_name=f"{title.replace(' ', '_').lower()}.pdf",
        **fields,
    )
