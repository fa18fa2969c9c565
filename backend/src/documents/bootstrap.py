"""Component wiring from application settings"""

import logging
from datetime import timedelta
from typing import Optional

from config import Settings, get_settings
from database import TransactionRunner, create_session_factory, get_engine
from infrastructure.search.meilisearch_indexer import MeilisearchIndexer
from infrastructure.storage.s3_storage_adapter import S3StorageAdapter
from infrastructure.storage.storage_config import (
    storage_config_from_settings,
    validate_storage_config,
)

from .indexing import IndexingReadinessTracker, IndexReconciler
from .service import DocumentService
from .type_capabilities import SqlDocumentTypeCapabilities

logger = logging.getLogger(__name__)


def build_runner(settings: Optional[Settings] = None) -> TransactionRunner:
    settings = settings or get_settings()
    return TransactionRunner(
        create_session_factory(get_engine()),
        max_attempts=settings.DB_MAX_RETRY_ATTEMPTS,
        retry_delay_seconds=settings.DB_RETRY_DELAY_SECONDS,
    )


def build_blob_store(settings: Optional[Settings] = None) -> S3StorageAdapter:
    settings = settings or get_settings()
    config = storage_config_from_settings(settings)
    validate_storage_config(config)
    return S3StorageAdapter(
        endpoint_url=config.endpoint_url,
        access_key=config.access_key,
        secret_key=config.secret_key,
        region=config.region,
    )


def build_indexer(settings: Optional[Settings] = None) -> MeilisearchIndexer:
    settings = settings or get_settings()
    return MeilisearchIndexer(
        base_url=settings.MEILISEARCH_URL,
        api_key=settings.MEILISEARCH_API_KEY,
        index_uid=settings.MEILISEARCH_INDEX,
        timeout=settings.SEARCH_HTTP_TIMEOUT_SECONDS,
    )


def build_document_service(
    settings: Optional[Settings] = None,
    runner: Optional[TransactionRunner] = None,
) -> DocumentService:
    """Build a DocumentService wired to S3, Meilisearch and the database."""
    settings = settings or get_settings()
    runner = runner or build_runner(settings)
    return DocumentService(
        runner=runner,
        blob_store=build_blob_store(settings),
        indexer=build_indexer(settings),
        capabilities=SqlDocumentTypeCapabilities(runner),
        container=settings.BLOB_CONTAINER,
        indexing_enabled=settings.INDEXING_ENABLED,
        max_upload_size=settings.MAX_UPLOAD_SIZE_BYTES,
        default_link_ttl=timedelta(minutes=settings.DEFAULT_ACCESS_LINK_TTL_MINUTES),
    )


def build_reconciler(
    settings: Optional[Settings] = None,
    runner: Optional[TransactionRunner] = None,
) -> IndexReconciler:
    """Build the IndexReconciler used by the scheduled reconciliation task."""
    settings = settings or get_settings()
    runner = runner or build_runner(settings)
    return IndexReconciler(
        runner=runner,
        indexer=build_indexer(settings),
        tracker=IndexingReadinessTracker(SqlDocumentTypeCapabilities(runner)),
        batch_size=settings.INDEXING_BATCH_SIZE,
    )
