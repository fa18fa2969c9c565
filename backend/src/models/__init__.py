"""SQLAlchemy models for the document repository"""

from .base import Base, UTCDateTime, utcnow
from .document_type import DocumentType
from .document import Document

__all__ = [
    "Base",
    "UTCDateTime",
    "utcnow",
    "DocumentType",
    "Document",
]
