"""SQL-backed document type capability lookup"""

import logging
from typing import Dict

from sqlalchemy import select

from database import TransactionRunner
from domain.documents.ports.document_type_port import DocumentTypeCapabilityPort
from models.document_type import DocumentType

logger = logging.getLogger(__name__)


class SqlDocumentTypeCapabilities(DocumentTypeCapabilityPort):
    """Answers indexability from the ``document_type`` table.

    Unknown and inactive types are not indexable. Answers are cached for the
    lifetime of the instance; build a new instance (or call ``clear_cache``)
    to pick up catalogue changes.
    """

    def __init__(self, runner: TransactionRunner):
        self.runner = runner
        self._cache: Dict[int, bool] = {}

    async def is_indexable(self, document_type_id: int) -> bool:
        if document_type_id in self._cache:
            return self._cache[document_type_id]

        async def _lookup(session) -> bool:
            result = await session.execute(
                select(DocumentType).where(DocumentType.id == document_type_id)
            )
            document_type = result.scalar_one_or_none()
            if document_type is None:
                logger.warning(f"Unknown document type {document_type_id}, treating as not indexable")
                return False
            return document_type.is_indexable

        indexable = await self.runner.run(_lookup)
        self._cache[document_type_id] = indexable
        return indexable

    def clear_cache(self) -> None:
        self._cache.clear()
