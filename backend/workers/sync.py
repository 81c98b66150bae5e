"""
Data Sync Workers — queued ingestion of source document batches.

Workers:
  1. ingest_batch_task: map one batch of source documents and push it
     through the sync orchestrator for one agency
"""

import asyncio
import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def run_ingest_pipeline(
    db,
    *,
    agency_id: uuid.UUID,
    kind: str,
    documents: list[dict],
    recorded_by: str | None = None,
    source: str | None = None,
) -> dict:
    """
    Worker-path ingestion:
      map documents -> ingest lines -> persist the sync run.
    """
    from inventory.sync import ingest_documents

    report = await ingest_documents(
        db,
        agency_id=agency_id,
        kind=kind,
        documents=documents,
        recorded_by=recorded_by,
        source=source,
    )
    return report.to_dict()


@celery_app.task(
    name="workers.sync.ingest_batch_task",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    acks_late=True,
)
def ingest_batch_task(
    self,
    agency_id: str,
    kind: str,
    documents: list[dict],
    recorded_by: str | None = None,
    source: str | None = None,
):
    """
    Ingest one queued batch for an agency.

    Lines already in the ledger are skipped by their idempotency key, so a
    retried task only appends what the failed attempt did not.
    """
    from core.config import get_settings
    from inventory.errors import PersistenceError

    run_id = self.request.id or "manual"
    logger.info("sync.task.started", agency_id=agency_id, kind=kind, documents=len(documents), run_id=run_id)

    async def _ingest():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                return await run_ingest_pipeline(
                    db,
                    agency_id=uuid.UUID(agency_id),
                    kind=kind,
                    documents=documents,
                    recorded_by=recorded_by or "sync-worker",
                    source=source,
                )
        finally:
            await engine.dispose()

    try:
        summary = asyncio.run(_ingest())
    except PersistenceError as exc:
        logger.error("sync.task.persistence_error", agency_id=agency_id, error=exc.message)
        raise self.retry(exc=exc)
    except Exception as exc:
        logger.error("sync.task.failed", agency_id=agency_id, kind=kind, error=str(exc))
        raise

    logger.info("sync.task.completed", agency_id=agency_id, run_id=run_id, status=summary["status"])
    return summary
