"""Object Storage Port - Domain interface for blob storage.

This port defines the contract the document core needs from a blob store.
Adapters implement it for S3, MinIO, or other storage backends.

Architecture: Hexagonal - Port interface in domain layer
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO


@dataclass
class StoredBlob:
    """Metadata for an object written to the blob store.

    Attributes:
        uri: Location of the object as reported by the store
        container: Container (bucket) holding the object
        name: Object name inside the container
        size_bytes: Number of bytes written
        sha256: SHA256 of the written content (hex), computed while streaming
    """
    uri: str
    container: str
    name: str
    size_bytes: int
    sha256: str

    @property
    def blob_path(self) -> str:
        """Path persisted on the document row: ``<container>/<name>``"""
        return f"{self.container}/{self.name}"


def split_blob_path(blob_path: str) -> tuple:
    """Split a persisted ``<container>/<name>`` path into its two parts

    Example:
        >>> split_blob_path('documents/5/2026/10/abc.pdf')
        ('documents', '5/2026/10/abc.pdf')
    """
    container, _, name = blob_path.partition("/")
    if not container or not name:
        raise ValueError(f"Invalid blob path: {blob_path!r}")
    return container, name


class ObjectStoragePort(ABC):
    """Port interface for blob storage operations.

    Key Design Principles:
    - Object names are chosen by the caller (tenant-prefixed by the core)
    - SHA256 calculated during upload so the core never hashes content itself
    - delete() is idempotent: an absent object is reported, not raised

    Example Usage:
        storage = S3StorageAdapter(...)

        with open('contract.pdf', 'rb') as f:
            stored = await storage.upload(
                container='documents',
                name='5/2026/10/3f2a.pdf',
                stream=f,
                content_type='application/pdf',
            )

        body = await storage.download(stored.container, stored.name)
    """

    @abstractmethod
    async def upload(
        self,
        container: str,
        name: str,
        stream: BinaryIO,
        content_type: str,
    ) -> StoredBlob:
        """Write an object to the store.

        Args:
            container: Target container (bucket)
            name: Object name
            stream: Binary stream to read content from
            content_type: MIME type stored with the object

        Returns:
            StoredBlob: uri, size and SHA256 of the written object

        Raises:
            StorageError: If upload fails or storage is unavailable
            ValueError: If the stream is empty
        """
        pass

    @abstractmethod
    async def download(self, container: str, name: str) -> BinaryIO:
        """Open an object for reading.

        Raises:
            FileNotFoundError: If the object doesn't exist
            StorageError: If retrieval fails

        Note:
            Caller is responsible for closing the returned stream.
        """
        pass

    @abstractmethod
    async def delete(self, container: str, name: str) -> bool:
        """Delete an object.

        Returns:
            bool: True if the object was deleted, False if it didn't exist

        Raises:
            StorageError: If deletion fails
        """
        pass

    @abstractmethod
    async def exists(self, container: str, name: str) -> bool:
        """Check if an object exists (HEAD request where supported)."""
        pass

    @abstractmethod
    async def issue_temporary_access_link(
        self,
        container: str,
        name: str,
        ttl: timedelta,
    ) -> str:
        """Generate a time-limited URL granting read access to an object.

        Args:
            container: Container holding the object
            name: Object name
            ttl: Link lifetime (callers enforce their own ceiling)

        Returns:
            str: Presigned URL

        Raises:
            FileNotFoundError: If the object doesn't exist
            StorageError: If URL generation fails
        """
        pass
