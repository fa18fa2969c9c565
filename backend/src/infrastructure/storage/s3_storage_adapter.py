"""S3 Storage Adapter - Implementation of ObjectStoragePort using boto3.

Provides blob storage for document content on AWS S3, MinIO and other
S3-compatible services. Containers map to buckets, object names to keys.

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import hashlib
import logging
from datetime import timedelta
from io import BytesIO
from typing import BinaryIO, Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from domain.documents.errors import StorageError
from domain.documents.ports.object_storage_port import ObjectStoragePort, StoredBlob

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class S3StorageAdapter(ObjectStoragePort):
    """S3-compatible storage adapter using boto3.

    Features:
    - SHA256 calculated while reading the upload stream (8KB chunks)
    - Idempotent delete: an absent object returns False instead of raising
    - Presigned GET URLs for temporary access links

    Example:
        config = storage_config_from_settings(get_settings())
        storage = S3StorageAdapter(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            region=config.region,
        )

        with open('contract.pdf', 'rb') as f:
            stored = await storage.upload('documents', '5/2026/10/3f2a.pdf', f, 'application/pdf')
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        s3_client=None,
    ):
        """Initialize S3 storage adapter.

        Args:
            endpoint_url: S3 endpoint URL (None for AWS S3, URL for MinIO)
            access_key: S3 access key ID
            secret_key: S3 secret access key
            region: AWS region (default: 'us-east-1')
            s3_client: Pre-built boto3 client (tests)

        Raises:
            StorageError: If S3 client initialization fails
        """
        try:
            self.s3_client = s3_client or boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            self.endpoint_url = endpoint_url
            self.region = region

            logger.info(
                f"Initialized S3 storage adapter: "
                f"endpoint={endpoint_url or 'AWS S3'}, region={region}"
            )
        except NoCredentialsError as e:
            raise StorageError(f"Invalid S3 credentials: {e}")
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    def _uri(self, container: str, name: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{container}/{name}"
        return f"s3://{container}/{name}"

    async def upload(
        self,
        container: str,
        name: str,
        stream: BinaryIO,
        content_type: str,
    ) -> StoredBlob:
        """Write an object, computing its SHA256 while reading the stream.

        Raises:
            StorageError: If upload fails
            ValueError: If the stream is empty
        """
        sha256_hash = hashlib.sha256()
        chunks = []
        size_bytes = 0

        chunk_size = 8192  # 8KB chunks
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            sha256_hash.update(chunk)
            chunks.append(chunk)
            size_bytes += len(chunk)

        if size_bytes == 0:
            raise ValueError("Cannot store empty content")

        sha256_hex = sha256_hash.hexdigest()

        try:
            self.s3_client.put_object(
                Bucket=container,
                Key=name,
                Body=BytesIO(b"".join(chunks)),
                ContentType=content_type,
                Metadata={"sha256": sha256_hex},
            )
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(
                f"S3 upload failed: container={container}, name={name}, "
                f"error={error_code}, message={e}"
            )
            raise StorageError(f"Failed to upload object: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error during upload: {e}")
            raise StorageError(f"Failed to upload object: {e}")

        logger.info(
            f"Uploaded object: container={container}, name={name}, "
            f"sha256={sha256_hex}, size={size_bytes}, content_type={content_type}"
        )

        return StoredBlob(
            uri=self._uri(container, name),
            container=container,
            name=name,
            size_bytes=size_bytes,
            sha256=sha256_hex,
        )

    async def download(self, container: str, name: str) -> BinaryIO:
        """Open an object for reading (caller must close the stream).

        Raises:
            FileNotFoundError: If the object doesn't exist
            StorageError: If retrieval fails
        """
        try:
            response = self.s3_client.get_object(Bucket=container, Key=name)
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _NOT_FOUND_CODES:
                logger.warning(f"Object not found: container={container}, name={name}")
                raise FileNotFoundError(f"Object not found: {container}/{name}")
            logger.error(
                f"S3 retrieval failed: container={container}, name={name}, error={error_code}"
            )
            raise StorageError(f"Failed to retrieve object: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error during retrieval: {e}")
            raise StorageError(f"Failed to retrieve object: {e}")

        logger.debug(f"Opened object: container={container}, name={name}")
        return response["Body"]

    async def delete(self, container: str, name: str) -> bool:
        """Delete an object.

        Returns:
            bool: True if deleted, False if it didn't exist

        Raises:
            StorageError: If deletion fails
        """
        if not await self.exists(container, name):
            logger.info(f"Object not found for deletion: container={container}, name={name}")
            return False

        try:
            self.s3_client.delete_object(Bucket=container, Key=name)
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(
                f"S3 deletion failed: container={container}, name={name}, error={error_code}"
            )
            raise StorageError(f"Failed to delete object: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error during deletion: {e}")
            raise StorageError(f"Failed to delete object: {e}")

        logger.info(f"Deleted object: container={container}, name={name}")
        return True

    async def exists(self, container: str, name: str) -> bool:
        """Check if an object exists (HEAD request).

        Raises:
            StorageError: If the store cannot answer (anything but "not found")
        """
        try:
            self.s3_client.head_object(Bucket=container, Key=name)
            return True
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in _NOT_FOUND_CODES:
                return False
            logger.error(
                f"Error checking object existence: container={container}, "
                f"name={name}, error={error_code}"
            )
            raise StorageError(f"Failed to check object existence: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error checking object existence: {e}")
            raise StorageError(f"Failed to check object existence: {e}")

    async def issue_temporary_access_link(
        self,
        container: str,
        name: str,
        ttl: timedelta,
    ) -> str:
        """Generate a presigned GET URL valid for ``ttl``.

        Raises:
            FileNotFoundError: If the object doesn't exist
            StorageError: If URL generation fails
        """
        if not await self.exists(container, name):
            raise FileNotFoundError(f"Object not found: {container}/{name}")

        expires_in_seconds = max(1, int(ttl.total_seconds()))
        try:
            url = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": container, "Key": name},
                ExpiresIn=expires_in_seconds,
            )
        except ClientError as e:
            error_code = _error_code(e)
            logger.error(
                f"Presigned URL generation failed: container={container}, "
                f"name={name}, error={error_code}"
            )
            raise StorageError(f"Failed to generate presigned URL: {error_code}")
        except Exception as e:
            logger.error(f"Unexpected error generating presigned URL: {e}")
            raise StorageError(f"Failed to generate presigned URL: {e}")

        logger.info(
            f"Generated presigned URL: container={container}, name={name}, "
            f"expires_in={expires_in_seconds}s"
        )
        return url

    async def ensure_container(self, container: str, create: bool = False) -> bool:
        """Verify that a bucket exists, optionally creating it.

        This should be called on application startup to fail fast if the
        bucket doesn't exist.

        Raises:
            StorageError: If the bucket is missing (and not created) or the check fails
        """
        try:
            self.s3_client.head_bucket(Bucket=container)
            logger.info(f"Verified bucket exists: {container}")
            return True
        except ClientError as e:
            error_code = _error_code(e)
            if error_code not in _NOT_FOUND_CODES and error_code != "NoSuchBucket":
                raise StorageError(f"Failed to verify bucket: {error_code}")

        if not create:
            raise StorageError(
                f"Bucket '{container}' does not exist. "
                f"Create it first or update BLOB_CONTAINER."
            )

        try:
            if self.region == "us-east-1":
                self.s3_client.create_bucket(Bucket=container)
            else:
                self.s3_client.create_bucket(
                    Bucket=container,
                    CreateBucketConfiguration={"LocationConstraint": self.region},
                )
        except ClientError as e:
            raise StorageError(f"Failed to create bucket: {_error_code(e)}")

        logger.info(f"Created bucket: {container}")
        return True
