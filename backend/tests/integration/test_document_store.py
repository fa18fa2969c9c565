"""Integration tests for DocumentStore

Tests cover:
- Insert defaults (id, lineage key, version, current flag, created_at)
- Tenant filtering on reads and writes
- Lineage constraints (one current version, unique version numbers)
- Lifecycle transitions with audit stamps
- Lifecycle flag filters and paging on reads
- Indexing bookkeeping (record_indexed does not advance updated_at)
- Index statistics and index state reset
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from documents.store import DocumentStore
from domain.documents import DocumentNotFoundError, LifecycleState, StateConflictError
from models.document import Document
from fixtures.collaborators import new_document


pytestmark = pytest.mark.integration


@pytest.fixture
def store(session, document_types, clock):
    return DocumentStore(session, clock=clock)


class TestAdd:
    """Test inserting lineage roots"""

    @pytest.mark.asyncio
    async def test_add_assigns_identity_and_defaults(self, store, clock):
        document = await store.add(new_document())

        assert document.id is not None
        assert document.lineage_key == document.id
        assert document.lineage_root_id is None
        assert document.version == 1
        assert document.is_current_version is True
        assert document.is_deleted is False
        assert document.is_archived is False
        assert document.created_at == clock()
        assert document.last_indexed_at is None

    @pytest.mark.asyncio
    async def test_add_fills_tenant_from_scope(self, session, document_types, clock):
        store = DocumentStore(session, tenant_id=7, clock=clock)

        document = await store.add(new_document(tenant_id=None))

        assert document.tenant_id == 7

    @pytest.mark.asyncio
    async def test_add_outside_scope_rejected(self, session, document_types, clock):
        store = DocumentStore(session, tenant_id=7, clock=clock)

        with pytest.raises(StateConflictError):
            await store.add(new_document(tenant_id=8))

    @pytest.mark.asyncio
    async def test_second_current_version_rejected(self, store):
        root = await store.add(new_document())

        with pytest.raises(StateConflictError):
            await store.add(new_document(lineage_root_id=root.id, version=2, is_current_version=True))

    @pytest.mark.asyncio
    async def test_duplicate_version_number_rejected(self, store):
        root = await store.add(new_document())

        with pytest.raises(StateConflictError):
            await store.add(new_document(lineage_root_id=root.id, version=1, is_current_version=False))

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, store):
        document = new_document()
        document.title = None

        with pytest.raises(IntegrityError):
            await store.add(document)


class TestReads:
    """Test read operations and tenant filtering"""

    @pytest.mark.asyncio
    async def test_get_by_id_absent_returns_none(self, store):
        assert await store.get_by_id(uuid4()) is None

    @pytest.mark.asyncio
    async def test_get_by_id_hides_other_tenant(self, session, store, clock):
        document = await store.add(new_document(tenant_id=5))

        other_tenant = DocumentStore(session, tenant_id=6, clock=clock)

        assert await other_tenant.get_by_id(document.id) is None
        assert await other_tenant.list_by_tenant(5) == []
        assert await other_tenant.count(5) == 0

    @pytest.mark.asyncio
    async def test_list_by_tenant_newest_first(self, store, clock):
        first = await store.add(new_document(title="First"))
        clock.advance(minutes=1)
        second = await store.add(new_document(title="Second"))
        await store.add(new_document(tenant_id=6, title="Other tenant"))

        documents = await store.list_by_tenant(5)

        assert [d.id for d in documents] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_list_by_tenant_excludes_deleted_by_default(self, store):
        kept = await store.add(new_document(title="Kept"))
        deleted = await store.add(new_document(title="Deleted"))
        await store.soft_delete(deleted.id, deleted_by="alice")

        assert [d.id for d in await store.list_by_tenant(5)] == [kept.id]
        assert {d.id for d in await store.list_by_tenant(5, include_deleted=True)} == {kept.id, deleted.id}
        assert await store.count(5) == 1
        assert await store.count(5, include_deleted=True) == 2

    @pytest.mark.asyncio
    async def test_list_by_document_type(self, store, document_types):
        contract = await store.add(new_document(title="Contract"))
        await store.add(new_document(title="Scan", document_type_id=document_types["scan"]))

        documents = await store.list_by_document_type(document_types["contract"])

        assert [d.id for d in documents] == [contract.id]

    @pytest.mark.asyncio
    async def test_get_by_id_lifecycle_filters(self, store):
        deleted = await store.add(new_document(title="Deleted"))
        await store.soft_delete(deleted.id, deleted_by="alice")
        archived = await store.add(new_document(title="Archived"))
        await store.archive(archived.id)

        assert (await store.get_by_id(deleted.id)).id == deleted.id
        assert await store.get_by_id(deleted.id, include_deleted=False) is None
        assert (await store.get_by_id(archived.id, include_deleted=False)).id == archived.id
        assert await store.get_by_id(archived.id, include_archived=False) is None

    @pytest.mark.asyncio
    async def test_list_by_tenant_excludes_archived_on_request(self, store):
        active = await store.add(new_document(title="Active"))
        archived = await store.add(new_document(title="Archived"))
        await store.archive(archived.id)

        assert {d.id for d in await store.list_by_tenant(5)} == {active.id, archived.id}
        assert [d.id for d in await store.list_by_tenant(5, include_archived=False)] == [active.id]

    @pytest.mark.asyncio
    async def test_list_by_tenant_pages(self, store, clock):
        first = await store.add(new_document(title="First"))
        clock.advance(minutes=1)
        second = await store.add(new_document(title="Second"))
        clock.advance(minutes=1)
        third = await store.add(new_document(title="Third"))

        assert [d.id for d in await store.list_by_tenant(5, limit=2)] == [third.id, second.id]
        assert [d.id for d in await store.list_by_tenant(5, offset=1, limit=1)] == [second.id]
        assert [d.id for d in await store.list_by_tenant(5, offset=2)] == [first.id]
        assert await store.list_by_tenant(5, offset=3) == []

    @pytest.mark.asyncio
    async def test_list_by_document_type_excludes_archived_on_request(self, store, document_types):
        active = await store.add(new_document(title="Active"))
        archived = await store.add(new_document(title="Archived"))
        await store.archive(archived.id)

        documents = await store.list_by_document_type(document_types["contract"], include_archived=False)

        assert [d.id for d in documents] == [active.id]

    @pytest.mark.asyncio
    async def test_get_current_version_skips_deleted(self, store):
        root = await store.add(new_document())
        await store.soft_delete(root.id, deleted_by="alice")

        assert await store.get_current_version(root.id) is None
        current = await store.get_current_version(root.id, include_deleted=True)
        assert current.id == root.id

    @pytest.mark.asyncio
    async def test_max_version_of_empty_lineage(self, store):
        assert await store.max_version(uuid4()) == 0

    @pytest.mark.asyncio
    async def test_list_by_content_hash_blank_hash(self, store):
        await store.add(new_document(content_hash="H1"))

        assert await store.list_by_content_hash("", 5) == []
        assert await store.list_by_content_hash("   ", 5) == []


class TestClearCurrentFlag:
    """Test moving the current-version marker"""

    @pytest.mark.asyncio
    async def test_clear_then_add_next_version(self, store):
        root = await store.add(new_document())

        changed = await store.clear_current_flag(root.id)
        version = await store.add(
            new_document(lineage_root_id=root.id, version=2, is_current_version=True)
        )

        assert changed == 1
        assert root.is_current_version is False
        assert version.lineage_key == root.id
        current = await store.get_current_version(root.id)
        assert current.id == version.id
        assert [d.version for d in await store.list_versions(root.id)] == [2, 1]
        assert await store.max_version(root.id) == 2


class TestLifecycleTransitions:
    """Test lifecycle transitions and their audit stamps"""

    @pytest.mark.asyncio
    async def test_soft_delete_stamps_audit_fields(self, store, clock):
        document = await store.add(new_document())
        clock.advance(minutes=5)

        deleted = await store.soft_delete(document.id, deleted_by="alice", reason="duplicate upload")

        assert deleted.is_deleted is True
        assert deleted.deleted_at == clock()
        assert deleted.deleted_by == "alice"
        assert deleted.deleted_reason == "duplicate upload"
        assert deleted.updated_at == clock()
        assert deleted.lifecycle_state == LifecycleState.DELETED

    @pytest.mark.asyncio
    async def test_restore_clears_audit_fields(self, store):
        document = await store.add(new_document())
        await store.soft_delete(document.id, deleted_by="alice", reason="mistake")

        restored = await store.restore(document.id)

        assert restored.is_deleted is False
        assert restored.deleted_at is None
        assert restored.deleted_by is None
        assert restored.deleted_reason is None

    @pytest.mark.asyncio
    async def test_archive_and_unarchive(self, store, clock):
        document = await store.add(new_document())

        archived = await store.archive(document.id)
        assert archived.is_archived is True
        assert archived.archived_at == clock()

        unarchived = await store.unarchive(document.id)
        assert unarchived.is_archived is False
        assert unarchived.archived_at is None

    @pytest.mark.asyncio
    async def test_delete_archived_keeps_archive_flag(self, store):
        document = await store.add(new_document())
        await store.archive(document.id)

        deleted = await store.soft_delete(document.id, deleted_by="alice")

        assert deleted.lifecycle_state == LifecycleState.DELETED_AND_ARCHIVED

    @pytest.mark.asyncio
    async def test_double_delete_rejected(self, store):
        document = await store.add(new_document())
        await store.soft_delete(document.id, deleted_by="alice")

        with pytest.raises(StateConflictError):
            await store.soft_delete(document.id, deleted_by="bob")

    @pytest.mark.asyncio
    async def test_restore_active_rejected(self, store):
        document = await store.add(new_document())

        with pytest.raises(StateConflictError, match="allowed: .*ARCHIVE"):
            await store.restore(document.id)

    @pytest.mark.asyncio
    async def test_transition_on_absent_document(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.archive(uuid4())

    @pytest.mark.asyncio
    async def test_transition_on_other_tenant_document(self, session, store, clock):
        document = await store.add(new_document(tenant_id=5))

        with pytest.raises(DocumentNotFoundError):
            await DocumentStore(session, tenant_id=6, clock=clock).soft_delete(document.id, "mallory")


class TestIndexingBookkeeping:
    """Test list_needing_indexing and record_indexed"""

    @pytest.mark.asyncio
    async def test_new_document_needs_indexing(self, store):
        document = await store.add(new_document())

        assert [d.id for d in await store.list_needing_indexing()] == [document.id]

    @pytest.mark.asyncio
    async def test_record_indexed_does_not_advance_updated_at(self, store, clock):
        document = await store.add(new_document())
        clock.advance(minutes=1)

        recorded = await store.record_indexed(document.id, "doc_1")

        assert recorded.search_index_id == "doc_1"
        assert recorded.last_indexed_at == clock()
        assert recorded.updated_at is None
        assert await store.list_needing_indexing() == []

    @pytest.mark.asyncio
    async def test_update_after_index_makes_document_stale(self, store, clock):
        document = await store.add(new_document())
        await store.record_indexed(document.id, "doc_1")
        clock.advance(minutes=1)

        document.title = "Renamed"
        await store.update(document)

        assert [d.id for d in await store.list_needing_indexing()] == [document.id]

    @pytest.mark.asyncio
    async def test_list_needing_indexing_respects_limit_and_order(self, store, clock):
        first = await store.add(new_document(title="First"))
        clock.advance(seconds=1)
        await store.add(new_document(title="Second"))

        assert [d.id for d in await store.list_needing_indexing(limit=1)] == [first.id]

    @pytest.mark.asyncio
    async def test_record_indexed_absent_document(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.record_indexed(uuid4(), "doc_x")

    @pytest.mark.asyncio
    async def test_remove(self, store):
        document = await store.add(new_document())

        await store.remove(document)

        assert await store.get_by_id(document.id) is None


class TestIndexStateMaintenance:
    """Test index_stats and reset_index_state"""

    @pytest.mark.asyncio
    async def test_index_stats_counts_live_current_versions(self, store, clock):
        indexed = await store.add(new_document(title="Indexed"))
        await store.record_indexed(indexed.id, "doc_1")
        changed = await store.add(new_document(title="Changed"))
        await store.record_indexed(changed.id, "doc_2")
        await store.add(new_document(title="Never indexed"))
        deleted = await store.add(new_document(title="Deleted"))
        await store.soft_delete(deleted.id, deleted_by="alice")
        clock.advance(minutes=1)
        changed.title = "Changed again"
        await store.update(changed)

        assert await store.index_stats() == (3, 2, 2)

    @pytest.mark.asyncio
    async def test_index_stats_skips_superseded_versions(self, store):
        root = await store.add(new_document())
        await store.clear_current_flag(root.id)
        await store.add(new_document(lineage_root_id=root.id, version=2, is_current_version=True))

        assert await store.index_stats() == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_index_stats_of_empty_tenant(self, session, document_types, clock):
        assert await DocumentStore(session, tenant_id=9, clock=clock).index_stats() == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_reset_index_state_makes_documents_stale_again(self, store, clock):
        document = await store.add(new_document())
        await store.record_indexed(document.id, "doc_1")
        await store.add(new_document(title="Never indexed"))

        changed = await store.reset_index_state()

        assert changed == 1
        reloaded = await store.get_by_id(document.id)
        assert reloaded.search_index_id is None
        assert reloaded.last_indexed_at is None
        assert reloaded.updated_at is None
        assert len(await store.list_needing_indexing()) == 2

    @pytest.mark.asyncio
    async def test_reset_index_state_is_tenant_scoped(self, session, store, clock):
        own = await store.add(new_document(tenant_id=5))
        other = await store.add(new_document(tenant_id=6, title="Other tenant"))
        await store.record_indexed(own.id, "doc_own")
        await store.record_indexed(other.id, "doc_other")

        changed = await DocumentStore(session, tenant_id=5, clock=clock).reset_index_state()

        assert changed == 1
        assert (await store.get_by_id(other.id)).search_index_id == "doc_other"
