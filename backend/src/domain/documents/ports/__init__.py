"""Ports for the external collaborators of the document core"""

from .object_storage_port import ObjectStoragePort, StoredBlob, split_blob_path
from .search_indexer_port import SearchIndexerPort
from .document_type_port import DocumentTypeCapabilityPort

__all__ = [
    "ObjectStoragePort",
    "StoredBlob",
    "split_blob_path",
    "SearchIndexerPort",
    "DocumentTypeCapabilityPort",
]
