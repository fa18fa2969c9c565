"""Meilisearch Indexer - Implementation of SearchIndexerPort over the REST API.

Documents are pushed with ``POST /indexes/{uid}/documents`` (add or replace),
refreshed with ``PUT`` (partial update) and removed with
``DELETE /indexes/{uid}/documents/{id}``. Meilisearch processes writes
asynchronously; an accepted task (HTTP 202) counts as indexed.

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

import httpx

from domain.documents.errors import SearchIndexError
from domain.documents.ports.search_indexer_port import SearchIndexerPort

logger = logging.getLogger(__name__)

SEARCHABLE_ATTRIBUTES = ["title", "description", "originalFileName", "tags", "metadata"]
FILTERABLE_ATTRIBUTES = [
    "tenantId",
    "documentTypeId",
    "mimeType",
    "isCurrentVersion",
    "isDeleted",
    "isArchived",
    "createdAt",
    "updatedAt",
]
SORTABLE_ATTRIBUTES = ["createdAt", "updatedAt", "title", "fileSizeBytes"]


def index_id_for(document) -> str:
    """Index entry id for a document.

    Reuses the recorded ``search_index_id`` so re-indexing replaces the same
    entry. New entries derive the id from the document id (Meilisearch ids
    allow only alphanumerics, '-' and '_').
    """
    return document.search_index_id or f"doc_{document.id.hex}"


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def to_search_document(document) -> Dict[str, Any]:
    """Map a Document row to the JSON body stored in the index."""
    return {
        "id": index_id_for(document),
        "documentId": str(document.id),
        "tenantId": document.tenant_id,
        "documentTypeId": document.document_type_id,
        "lineageRootId": str(document.root_id),
        "title": document.title,
        "description": document.description,
        "originalFileName": document.original_file_name,
        "mimeType": document.mime_type,
        "fileSizeBytes": document.file_size_bytes,
        "tags": document.tags,
        "metadata": document.metadata_json,
        "version": document.version,
        "isCurrentVersion": bool(document.is_current_version),
        "isDeleted": bool(document.is_deleted),
        "isArchived": bool(document.is_archived),
        "createdAt": _isoformat(document.created_at),
        "createdBy": document.created_by,
        "updatedAt": _isoformat(document.updated_at),
        "updatedBy": document.updated_by,
    }


class MeilisearchIndexer(SearchIndexerPort):
    """Search indexer backed by a Meilisearch index.

    Example:
        indexer = MeilisearchIndexer(
            base_url="http://localhost:7700",
            api_key="masterKey",
            index_uid="documents",
        )
        await indexer.ensure_index()
        index_id = await indexer.index_one(document)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        index_uid: str = "documents",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the indexer.

        Args:
            base_url: Meilisearch URL
            api_key: API key sent as Bearer token
            index_uid: Index receiving documents
            timeout: Request timeout in seconds
            client: Pre-built httpx.AsyncClient (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.index_uid = index_uid
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        self._client = client

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=self.headers, json=json, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, url, headers=self.headers, json=json, timeout=self.timeout
                    )
        except httpx.HTTPError as e:
            logger.error(f"Meilisearch request failed: {method} {path}: {e}")
            raise SearchIndexError(f"Search indexer unreachable: {e}")

        return response

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            logger.error(
                f"Meilisearch rejected {action}: {response.text}",
                extra={"status_code": response.status_code},
            )
            raise SearchIndexError(
                f"{action} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

    async def ensure_index(self) -> None:
        """Create the index (primary key ``id``) and apply its settings.

        An already existing index is not an error.
        """
        response = await self._request(
            "POST", "/indexes", json={"uid": self.index_uid, "primaryKey": "id"}
        )
        self._raise_for_status(response, "index creation")

        response = await self._request(
            "PATCH",
            f"/indexes/{self.index_uid}/settings",
            json={
                "searchableAttributes": SEARCHABLE_ATTRIBUTES,
                "filterableAttributes": FILTERABLE_ATTRIBUTES,
                "sortableAttributes": SORTABLE_ATTRIBUTES,
            },
        )
        self._raise_for_status(response, "index settings update")
        logger.info(f"Initialized Meilisearch index: {self.index_uid}")

    async def index_one(self, document) -> Optional[str]:
        """Add or replace one document in the index."""
        result = await self.index_batch([document])
        return result.get(document.id)

    async def index_batch(self, documents: Sequence) -> Dict[UUID, str]:
        """Add or replace many documents in one request.

        Raises:
            SearchIndexError: If the batch was rejected
        """
        if not documents:
            return {}

        payload: List[Dict[str, Any]] = [to_search_document(document) for document in documents]
        response = await self._request(
            "POST", f"/indexes/{self.index_uid}/documents?primaryKey=id", json=payload
        )
        self._raise_for_status(response, "document indexing")

        logger.info(f"Submitted {len(payload)} documents to index {self.index_uid}")
        return {document.id: body["id"] for document, body in zip(documents, payload)}

    async def update(self, document) -> None:
        """Partially update the indexed fields of a document."""
        response = await self._request(
            "PUT", f"/indexes/{self.index_uid}/documents", json=[to_search_document(document)]
        )
        self._raise_for_status(response, "document update")

    async def remove(self, index_id: str) -> None:
        """Remove an entry. Removing an unknown id is a no-op in Meilisearch."""
        response = await self._request(
            "DELETE", f"/indexes/{self.index_uid}/documents/{index_id}"
        )
        self._raise_for_status(response, "document removal")
        logger.info(f"Removed index entry {index_id} from {self.index_uid}")

    async def clear(self) -> None:
        """Delete every document of the index (the index and its settings stay)."""
        response = await self._request("DELETE", f"/indexes/{self.index_uid}/documents")
        self._raise_for_status(response, "index clearing")
        logger.warning(f"Cleared all entries of index {self.index_uid}")
