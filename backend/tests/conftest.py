"""Pytest fixtures for the document repository core.

Provides reusable test fixtures for:
- Async SQLite database (fresh file per test, tables from model metadata)
- TransactionRunner without retry delay
- Document type catalogue rows
- In-memory blob store, recording indexer and a controllable clock
- DocumentService wired to the fakes

Usage:
    @pytest.mark.asyncio
    async def test_create(service):
        document = await service.create_document(request, io.BytesIO(b"%PDF"))
        assert document.version == 1
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("S3_ACCESS_KEY_ID", "test-access-key")
os.environ.setdefault("S3_SECRET_ACCESS_KEY", "test-secret-key")
os.environ.setdefault("BLOB_CONTAINER", "documents")
os.environ.setdefault("DB_RETRY_DELAY_SECONDS", "0")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))
tests_dir = Path(__file__).parent
sys.path.insert(0, str(tests_dir))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from config import get_settings
from database import TransactionRunner, create_session_factory
from documents.service import DocumentService
from models.base import Base
from models.document_type import DocumentType
from fixtures.collaborators import (
    CONTAINER,
    CONTRACT_TYPE_ID,
    SCAN_TYPE_ID,
    FakeClock,
    InMemoryBlobStore,
    RecordingIndexer,
    StaticTypeCapabilities,
)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Settings are cached per process; tests that patch env see fresh values."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async SQLite engine on a temp file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """A session whose transaction is rolled back after the test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def runner(session_factory) -> TransactionRunner:
    return TransactionRunner(session_factory, max_attempts=3, retry_delay_seconds=0)


@pytest_asyncio.fixture
async def document_types(session_factory):
    """Catalogue with an indexed type (1, contract) and a non-indexed type (2, scan)."""
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                DocumentType(
                    id=CONTRACT_TYPE_ID,
                    name="contract",
                    display_name="Contract",
                    is_content_indexed=True,
                ),
                DocumentType(
                    id=SCAN_TYPE_ID,
                    name="scan",
                    display_name="Scanned image",
                    is_content_indexed=False,
                ),
            ])
    return {"contract": CONTRACT_TYPE_ID, "scan": SCAN_TYPE_ID}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def indexer() -> RecordingIndexer:
    return RecordingIndexer()


@pytest.fixture
def capabilities() -> StaticTypeCapabilities:
    return StaticTypeCapabilities(not_indexable=[SCAN_TYPE_ID])


@pytest.fixture
def service(runner, blob_store, indexer, capabilities, clock) -> DocumentService:
    return DocumentService(
        runner=runner,
        blob_store=blob_store,
        indexer=indexer,
        capabilities=capabilities,
        container=CONTAINER,
        clock=clock,
    )
