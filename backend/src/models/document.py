"""Document SQLAlchemy model

Document represents one revision of a logical document: binary content in
the blob store plus descriptive metadata, lineage, lifecycle flags and
search indexing state.
"""

import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    text,
    true,
)
from sqlalchemy.sql import func

from domain.documents.lifecycle_state import LifecycleState, state_from_flags
from .base import Base, UTCDateTime, utcnow


class Document(Base):
    """Document model representing one revision in a lineage.

    Lineage is flat: every non-root revision points at the lineage *root*
    through ``lineage_root_id`` (null on the root itself). ``lineage_key``
    repeats the root id on every row, root included, so that the
    "one current version per lineage" rule can be enforced by a partial
    unique index.
    """
    __tablename__ = "document"
    __table_args__ = (
        UniqueConstraint("lineage_key", "version", name="uq_document_lineage_version"),
        CheckConstraint("version > 0", name="ck_document_version_positive"),
        Index(
            "uq_document_current_per_lineage",
            "lineage_key",
            unique=True,
            postgresql_where=text("is_current_version"),
            sqlite_where=text("is_current_version"),
        ),
        Index("ix_document_tenant_id", "tenant_id"),
        Index("ix_document_document_type_id", "document_type_id"),
        Index("ix_document_tenant_indexing", "tenant_id", "last_indexed_at", "updated_at"),
        Index("ix_document_tenant_content_hash", "tenant_id", "content_hash"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Integer, nullable=False)
    document_type_id = Column(
        Integer,
        ForeignKey("document_type.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Lineage
    lineage_root_id = Column(Uuid, nullable=True)
    lineage_key = Column(Uuid, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_current_version = Column(Boolean, nullable=False, default=True, server_default=true())

    # Content
    content_hash = Column(Text, nullable=True)
    blob_path = Column(Text, nullable=False)
    mime_type = Column(Text, nullable=True)
    file_size_bytes = Column(BigInteger, nullable=True)
    original_file_name = Column(Text, nullable=True)

    # Descriptive (metadata and tags are opaque serialized text)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    metadata_json = Column("metadata", Text, nullable=True)
    tags = Column(Text, nullable=True)

    # Search indexing
    search_index_id = Column(Text, nullable=True)
    last_indexed_at = Column(UTCDateTime, nullable=True)

    # Lifecycle
    is_deleted = Column(Boolean, nullable=False, default=False, server_default=false())
    deleted_at = Column(UTCDateTime, nullable=True)
    deleted_by = Column(Text, nullable=True)
    deleted_reason = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False, server_default=false())
    archived_at = Column(UTCDateTime, nullable=True)

    # Audit
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())
    created_by = Column(Text, nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)
    updated_by = Column(Text, nullable=True)

    @property
    def root_id(self):
        """Id of the lineage root this row belongs to"""
        return self.lineage_root_id or self.id

    @property
    def lifecycle_state(self) -> LifecycleState:
        return state_from_flags(bool(self.is_deleted), bool(self.is_archived))

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} tenant={self.tenant_id} "
            f"lineage={self.root_id} v{self.version}"
            f"{' current' if self.is_current_version else ''}>"
        )
