"""Celery tasks for search index reconciliation.

Tasks:
- reconcile_search_index_task: periodic pass pushing stale documents to the
  search indexer
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from celery import shared_task

from config import get_settings
from database import TransactionRunner, create_engine_from_url, create_session_factory
from observability.correlation import correlation_scope

from .bootstrap import build_reconciler

logger = logging.getLogger(__name__)


async def _run_reconciliation(
    tenant_id: Optional[int],
    limit: Optional[int],
    full: bool = False,
) -> Dict[str, Any]:
    settings = get_settings()
    # asyncio.run starts a fresh loop per task, so the engine cannot be shared
    engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    try:
        runner = TransactionRunner(
            create_session_factory(engine),
            max_attempts=settings.DB_MAX_RETRY_ATTEMPTS,
            retry_delay_seconds=settings.DB_RETRY_DELAY_SECONDS,
        )
        reconciler = build_reconciler(settings, runner=runner)
        report = await reconciler.run_once(tenant_id=tenant_id, limit=limit, full=full)
    finally:
        await engine.dispose()

    return {
        "status": "completed",
        "full": report.full,
        "reset": report.reset,
        "candidates": report.candidates,
        "indexed": report.indexed,
        "failed": report.failed,
        "batches": report.batches,
        "has_errors": report.has_errors,
        "started_at": report.started_at.isoformat(),
        "completed_at": report.completed_at.isoformat() if report.completed_at else None,
        "errors": [
            {"document_id": str(failure.document_id), "error": failure.error}
            for failure in report.errors
        ],
    }


@shared_task(name="documents.reconcile_index", bind=True)
def reconcile_search_index_task(
    self,
    tenant_id: Optional[int] = None,
    limit: Optional[int] = None,
    full: bool = False,
) -> Dict[str, Any]:
    """Push documents needing indexing to the search indexer.

    Idempotent: documents indexed by a previous run (or by the synchronous
    path) are no longer candidates, and re-indexing replaces entries.

    Args:
        tenant_id: Restrict the pass to one tenant (all tenants when None)
        limit: Maximum number of documents to process
        full: Reset recorded index state first and re-index everything

    Returns:
        Dict with reconciliation statistics (status, candidates, indexed,
        failed, batches, errors)

    Raises:
        Exception: Logs errors but does not raise (task always completes)

    Example Celery Beat schedule configuration:
        celery_app.conf.beat_schedule = {
            'documents-reconcile-index': {
                'task': 'documents.reconcile_index',
                'schedule': 300.0,  # every 5 minutes
                'options': {'expires': 240},
            },
        }
    """
    if not get_settings().INDEXING_ENABLED:
        logger.info("Index reconciliation skipped: indexing disabled")
        return {"status": "skipped", "indexed": 0}

    with correlation_scope():
        logger.info("Index reconciliation task started", extra={"tenant_id": tenant_id, "full": full})
        try:
            result = asyncio.run(_run_reconciliation(tenant_id, limit, full))
        except Exception as e:
            logger.error(
                "Index reconciliation task failed",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )
            return {
                "status": "failed",
                "error": str(e),
                "indexed": 0,
            }

        logger.info(
            f"Index reconciliation task completed: {result['indexed']} indexed, "
            f"{result['failed']} failed",
            extra={"tenant_id": tenant_id},
        )
        return result
