"""Unit tests for TransactionRunner retry and rollback behaviour"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, ProgrammingError

from database import TransactionRunner, is_transient_error
from documents.store import DocumentStore
from domain.documents import StateConflictError
from models.document import Document
from fixtures.collaborators import new_document


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


class TestIsTransientError:
    """Test classification of database failures"""

    def test_operational_error_is_transient(self):
        assert is_transient_error(_operational_error()) is True

    def test_invalidated_connection_is_transient(self):
        error = DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)
        assert is_transient_error(error) is True

    def test_integrity_error_is_permanent(self):
        assert is_transient_error(IntegrityError("INSERT", {}, Exception("unique"))) is False

    def test_programming_error_is_permanent(self):
        assert is_transient_error(ProgrammingError("SELEC", {}, Exception("syntax"))) is False

    def test_domain_error_is_permanent(self):
        assert is_transient_error(StateConflictError("already deleted")) is False


class TestRun:
    """Test TransactionRunner.run"""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, runner, session_factory, document_types):
        document = await runner.run(lambda session: _add(session))

        async with session_factory() as session:
            stored = await session.get(Document, document.id)
        assert stored is not None

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, runner, session_factory, document_types):
        added = []

        async def add_then_fail(session):
            added.append((await _add(session)).id)
            raise StateConflictError("rejected")

        with pytest.raises(StateConflictError):
            await runner.run(add_then_fail)

        async with session_factory() as session:
            result = await session.execute(select(Document).where(Document.id == added[0]))
            assert result.scalar_one_or_none() is None

    @pytest.mark.asyncio
    async def test_retries_transient_failure_from_scratch(self, runner, document_types):
        attempts = []

        async def flaky(session):
            attempts.append(session)
            if len(attempts) == 1:
                raise _operational_error()
            return "done"

        assert await runner.run(flaky) == "done"
        assert len(attempts) == 2
        assert attempts[0] is not attempts[1]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, session_factory):
        runner = TransactionRunner(session_factory, max_attempts=3, retry_delay_seconds=0)
        attempts = []

        async def always_failing(session):
            attempts.append(1)
            raise _operational_error()

        with pytest.raises(OperationalError):
            await runner.run(always_failing)
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_permanent_errors_are_not_retried(self, runner):
        attempts = []

        async def conflicting(session):
            attempts.append(1)
            raise IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(IntegrityError):
            await runner.run(conflicting)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_tenant_scope_is_set_on_session(self, runner):
        async def read_scope(session):
            return session.info.get("tenant_id")

        assert await runner.run(read_scope, tenant_id=5) == 5
        assert await runner.run(read_scope) is None


async def _add(session) -> Document:
    return await DocumentStore(session).add(new_document())
