"""DocumentType SQLAlchemy model

DocumentType classifies documents and answers whether a type takes part in
full-text content indexing.
"""

from sqlalchemy import Boolean, Column, Integer, Text, Index, true
from sqlalchemy.sql import func

from .base import Base, UTCDateTime, utcnow


class DocumentType(Base):
    """Document classification shared by all tenants.

    Only ``is_content_indexed`` and ``is_active`` are interpreted by the core:
    together they gate whether documents of this type are sent to the search
    indexer.
    """
    __tablename__ = "document_type"
    __table_args__ = (
        Index("uq_document_type_name", "name", unique=True),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    display_name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_content_indexed = Column(Boolean, nullable=False, default=True, server_default=true())
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())

    @property
    def is_indexable(self) -> bool:
        return bool(self.is_active and self.is_content_indexed)
