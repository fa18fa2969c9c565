"""Storage configuration for S3-compatible object storage.

Supports both MinIO (development) and AWS S3 (production) with the same
interface. Configuration comes from application settings or directly from
the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class StorageConfig:
    """Configuration for S3-compatible object storage.

    Attributes:
        endpoint_url: S3 endpoint URL (e.g., 'http://localhost:9000' for MinIO,
                      None for AWS S3 which uses default regional endpoints)
        access_key: S3 access key ID
        secret_key: S3 secret access key
        container: Bucket receiving document content
        region: AWS region (default: 'us-east-1')
    """
    endpoint_url: Optional[str]
    access_key: str
    secret_key: str
    container: str
    region: str = "us-east-1"


def storage_config_from_settings(settings) -> StorageConfig:
    """Build the storage configuration from application settings."""
    return StorageConfig(
        endpoint_url=settings.S3_ENDPOINT_URL or None,
        access_key=settings.S3_ACCESS_KEY_ID,
        secret_key=settings.S3_SECRET_ACCESS_KEY,
        container=settings.BLOB_CONTAINER,
        region=settings.S3_REGION,
    )


def load_storage_config_from_env() -> StorageConfig:
    """Load storage configuration from environment variables.

    Environment Variables:
        S3_ENDPOINT_URL: MinIO endpoint (e.g., 'http://localhost:9000')
                         If not set, assumes AWS S3 with default regional endpoints
        S3_ACCESS_KEY_ID: Access key for MinIO/S3
        S3_SECRET_ACCESS_KEY: Secret key for MinIO/S3
        BLOB_CONTAINER: Bucket name (default: 'documents')
        S3_REGION: AWS region (default: 'us-east-1')

    Raises:
        ValueError: If required environment variables are missing
    """
    access_key = os.getenv("S3_ACCESS_KEY_ID")
    secret_key = os.getenv("S3_SECRET_ACCESS_KEY")

    if not access_key or not secret_key:
        raise ValueError(
            "Missing required storage credentials. "
            "Set S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY environment variables. "
            "For MinIO: use 'minioadmin' for both in development. "
            "For AWS S3: use your IAM credentials."
        )

    return StorageConfig(
        endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        access_key=access_key,
        secret_key=secret_key,
        container=os.getenv("BLOB_CONTAINER", "documents"),
        region=os.getenv("S3_REGION", "us-east-1"),
    )


def validate_storage_config(config: StorageConfig) -> None:
    """Validate storage configuration.

    Raises:
        ValueError: If configuration is invalid
    """
    if not config.access_key:
        raise ValueError("Storage access_key is required")

    if not config.secret_key:
        raise ValueError("Storage secret_key is required")

    if not config.container:
        raise ValueError("Storage container is required")

    if "/" in config.container:
        raise ValueError(f"Invalid container name: {config.container}. Must not contain '/'")

    if config.endpoint_url:
        # MinIO configuration
        if not config.endpoint_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid endpoint_url: {config.endpoint_url}. "
                "Must start with http:// or https://"
            )
    else:
        # AWS S3 configuration
        if not config.region:
            raise ValueError("AWS region is required when using S3 (S3_ENDPOINT_URL not set)")
