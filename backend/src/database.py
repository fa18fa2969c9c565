"""Database engine, session factory and unit-of-work execution strategy.

Provides async database connectivity for the document repository core.
Includes a tenant-scoped session factory and a TransactionRunner that runs a
unit of work in one transaction and retries it as a whole on transient
infrastructure failures.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session

from config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_engine_from_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend.

    Pool settings only apply to PostgreSQL (not SQLite).
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": echo,
    }

    if not database_url.startswith("sqlite"):
        settings = get_settings()
        engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

    return create_async_engine(database_url, **engine_kwargs)


@lru_cache()
def get_engine() -> AsyncEngine:
    """Get the process-wide engine built from settings."""
    settings = get_settings()
    return create_engine_from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory used by every unit of work.

    expire_on_commit is disabled so documents returned from a committed unit
    of work stay readable without another round trip.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_db_session(
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """Async context manager for database sessions.

    Usage:
        async with get_db_session() as session:
            await session.execute(select(Document))

    Automatically commits on success, rolls back on exception.
    """
    factory = session_factory or create_session_factory(get_engine())
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


@asynccontextmanager
async def tenant_scoped_session(
    tenant_id: Optional[int],
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """Session carrying a tenant scope in ``session.info["tenant_id"]``.

    DocumentStore reads the scope from the session and adds a tenant filter
    to every query. New rows flushed through the session get the tenant id
    filled in when it is missing. A None tenant leaves the session unscoped.
    """
    async with get_db_session(session_factory) as session:
        if tenant_id is not None:
            session.info["tenant_id"] = tenant_id
        yield session


@event.listens_for(Session, "before_flush")
def auto_populate_tenant_id(session, flush_context, instances):
    """Fill tenant_id on INSERT for new rows of a tenant-scoped session.

    Only applies to models with a tenant_id attribute. Explicit tenant_id
    values are never overwritten.
    """
    tenant_id = session.info.get("tenant_id")
    if tenant_id is None:
        return

    for instance in session.new:
        if hasattr(instance, "tenant_id") and instance.tenant_id is None:
            instance.tenant_id = tenant_id


def is_transient_error(exc: BaseException) -> bool:
    """Return True for failures worth retrying as a whole unit of work.

    Connection drops, server restarts and serialization/lock timeouts surface
    as OperationalError / InterfaceError or as a DBAPIError flagged with
    connection_invalidated. Integrity and programming errors are permanent.
    """
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


class TransactionRunner:
    """Unit-of-work execution strategy.

    Each call to ``run`` opens a fresh session, begins a transaction, hands
    the session to ``operation`` and commits. Any exception rolls back the
    whole unit; transient database failures re-run it from scratch (never
    partially), up to ``max_attempts`` times. Cancellation rolls back and
    propagates without retrying.

    Example:
        runner = TransactionRunner(create_session_factory(engine))

        async def rename(session):
            store = DocumentStore(session, tenant_id=5)
            ...

        document = await runner.run(rename, tenant_id=5)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts or settings.DB_MAX_RETRY_ATTEMPTS)
        self.retry_delay_seconds = (
            settings.DB_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )

    async def run(
        self,
        operation: Callable[[AsyncSession], Awaitable[T]],
        tenant_id: Optional[int] = None,
    ) -> T:
        """Run ``operation`` inside one transaction, retrying transient failures."""
        attempt = 0
        while True:
            attempt += 1
            try:
                async with tenant_scoped_session(tenant_id, self.session_factory) as session:
                    return await operation(session)
            except Exception as e:
                if not is_transient_error(e) or attempt >= self.max_attempts:
                    raise
                logger.warning(
                    f"Transient database failure, retrying unit of work "
                    f"(attempt {attempt}/{self.max_attempts}): {e}",
                    extra={"tenant_id": tenant_id},
                )
                await asyncio.sleep(self.retry_delay_seconds * attempt)
