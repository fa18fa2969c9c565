"""Pydantic schemas for document operations.

This module defines the request and result schemas of the document core:
- CreateDocumentRequest: Input for a new lineage root
- CreateVersionRequest: Input for a new revision of an existing lineage
- UpdateDocumentRequest: Partial update of descriptive fields
- IndexReconciliationReport: Outcome of one reconciliation pass
- IndexStats: Indexing coverage of live current versions

Constructing a request with invalid fields raises pydantic.ValidationError
(a ValueError), before any store or blob-store access.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.documents.validation import (
    MAX_TITLE_LENGTH,
    validate_filename,
    validate_mime_type,
)


def _check(result) -> None:
    is_valid, message = result
    if not is_valid:
        raise ValueError(message)


class _DescriptiveFields(BaseModel):
    """Descriptive fields shared by create and version requests."""

    description: Optional[str] = Field(default=None, description="Free text description")
    metadata: Optional[str] = Field(
        default=None,
        description="Opaque serialized metadata, stored as-is",
    )
    tags: Optional[str] = Field(
        default=None,
        description="Opaque serialized tag list, stored as-is",
    )


class CreateDocumentRequest(_DescriptiveFields):
    """Input for creating the root (version 1) of a new lineage."""

    model_config = ConfigDict(str_strip_whitespace=True)

    tenant_id: int = Field(..., gt=0, description="Owning tenant")
    document_type_id: int = Field(..., gt=0, description="Document type (gates indexing)")
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    original_file_name: str = Field(..., description="File name as uploaded")
    mime_type: str = Field(..., description="MIME type of the content")
    content_hash: Optional[str] = Field(
        default=None,
        description="Digest supplied by the caller; the blob store SHA256 is used when absent",
    )
    created_by: Optional[str] = Field(default=None, description="Actor creating the document")

    @field_validator("original_file_name")
    @classmethod
    def validate_original_file_name(cls, v: str) -> str:
        _check(validate_filename(v))
        return v

    @field_validator("mime_type")
    @classmethod
    def validate_mime(cls, v: str) -> str:
        _check(validate_mime_type(v))
        return v.lower()

    @field_validator("content_hash")
    @classmethod
    def blank_hash_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class CreateVersionRequest(_DescriptiveFields):
    """Input for a new revision of an existing lineage.

    Unset descriptive fields are inherited from the previous current version.
    Tenant and document type always come from the lineage root.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    original_file_name: str
    mime_type: str
    content_hash: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("original_file_name")
    @classmethod
    def validate_original_file_name(cls, v: str) -> str:
        _check(validate_filename(v))
        return v

    @field_validator("mime_type")
    @classmethod
    def validate_mime(cls, v: str) -> str:
        _check(validate_mime_type(v))
        return v.lower()

    @field_validator("content_hash")
    @classmethod
    def blank_hash_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class UpdateDocumentRequest(_DescriptiveFields):
    """Partial update of a document's descriptive fields.

    Only fields explicitly set on the request are applied.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    updated_by: Optional[str] = None


class IndexingFailure(BaseModel):
    """One document the reconciliation pass could not index."""

    document_id: UUID
    error: str


class IndexReconciliationReport(BaseModel):
    """Outcome of one reconciliation pass.

    Per-document failures are collected in ``errors``; the pass never stops
    at the first failure.
    """

    started_at: datetime = Field(description="Snapshot time used as last_indexed_at")
    completed_at: Optional[datetime] = None
    full: bool = Field(default=False, description="Recorded index state was reset first")
    reset: int = Field(default=0, ge=0, description="Rows whose index state was reset")
    candidates: int = Field(default=0, ge=0, description="Documents found needing indexing")
    indexed: int = Field(default=0, ge=0, description="Documents indexed and recorded")
    batches: int = Field(default=0, ge=0)
    errors: List[IndexingFailure] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def add_error(self, document_id: UUID, error: str) -> None:
        self.errors.append(IndexingFailure(document_id=document_id, error=error))


class IndexStats(BaseModel):
    """Indexing coverage of live (not deleted) current versions."""

    total_documents: int = Field(ge=0)
    indexed_documents: int = Field(ge=0, description="Indexed at least once")
    documents_needing_indexing: int = Field(ge=0, description="Never indexed or changed since")
    retrieved_at: datetime
