"""
Sync Orchestrator — source line items in, ledger rows out.

Per line:
  1. refuse adjustment lines; those reach the ledger only through approval
  2. skip when (external_source, external_id) is already in the ledger
  3. resolve the product (matcher); categories are derived on read
  4. validate the sign against the transaction type
  5. append one ledger row inside its own SAVEPOINT

A failing line is recorded in ``failed_lines`` and the batch moves on.
Duplicates are counted separately and never reported as failures. The
batch outcome is persisted as a SyncRun so partial success stays visible.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import SyncRun
from integrations.base import FailedLine, SourceLine, SyncStatus, get_mapper
from inventory.catalog import CatalogEntry, load_catalog
from inventory.errors import DuplicateIngestionError, PersistenceError, ValidationError
from inventory.ledger import TransactionType, append_transaction, idempotency_key_exists
from inventory.matcher import match_product

logger = structlog.get_logger()


@dataclass
class BatchReport:
    source: str
    transaction_type: str | None
    lines_received: int = 0
    ingested: int = 0
    skipped_duplicate: int = 0
    matched: int = 0
    unmatched: int = 0
    failed_lines: list[FailedLine] = field(default_factory=list)
    aborted: bool = False
    status: SyncStatus = SyncStatus.NO_DATA
    run_id: uuid.UUID | None = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    @property
    def failed(self) -> int:
        return len(self.failed_lines)

    def resolve_status(self) -> SyncStatus:
        if self.lines_received == 0:
            self.status = SyncStatus.NO_DATA
        elif self.failed and not (self.ingested or self.skipped_duplicate):
            self.status = SyncStatus.FAILED
        elif self.failed or self.aborted:
            self.status = SyncStatus.PARTIAL
        else:
            self.status = SyncStatus.SUCCESS
        return self.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "source": self.source,
            "transaction_type": self.transaction_type,
            "status": self.status.value,
            "lines_received": self.lines_received,
            "ingested": self.ingested,
            "skipped_duplicate": self.skipped_duplicate,
            "matched": self.matched,
            "unmatched": self.unmatched,
            "failed": self.failed,
            "failed_lines": [line.to_dict() for line in self.failed_lines],
            "aborted": self.aborted,
        }


def _coerce_line(line: SourceLine | dict) -> SourceLine:
    if isinstance(line, SourceLine):
        return line
    return SourceLine(**line)


async def ingest_batch(
    db: AsyncSession,
    *,
    agency_id: uuid.UUID,
    source: str,
    lines: Sequence[SourceLine | dict],
    transaction_type: str | None = None,
    catalog: Sequence[CatalogEntry] | None = None,
    should_continue: Callable[[], bool] | None = None,
    recorded_by: str | None = None,
    rejected: Iterable[FailedLine] = (),
) -> BatchReport:
    """
    Ingest one batch of line items for one agency and commit it.

    ``transaction_type`` applies to lines that do not carry their own.
    ``rejected`` holds lines a source mapper already refused; they count as
    received and failed. ``should_continue`` is checked before every line;
    returning False stops the batch and keeps what was already appended.
    """
    settings = get_settings()
    report = BatchReport(source=source, transaction_type=transaction_type)
    report.failed_lines.extend(rejected)
    report.lines_received = len(lines) + len(report.failed_lines)

    log = logger.bind(agency_id=str(agency_id), source=source)
    log.info("sync.batch.started", lines=report.lines_received, transaction_type=transaction_type)

    if catalog is None:
        catalog = await load_catalog(db, agency_id)

    for index, raw_line in enumerate(lines):
        if should_continue is not None and not should_continue():
            report.aborted = True
            log.warning("sync.batch.aborted", processed=index, remaining=len(lines) - index)
            break

        try:
            line = _coerce_line(raw_line)
        except TypeError as exc:
            report.failed_lines.append(FailedLine(index=index, reason=f"Malformed line item: {exc}"))
            continue

        line_type = line.transaction_type or transaction_type or ""
        if line_type == TransactionType.ADJUSTMENT.value:
            report.failed_lines.append(
                FailedLine(
                    index=index,
                    external_id=line.external_id,
                    description=line.description,
                    code=ValidationError.code,
                    reason="Adjustments reach the ledger only through an approved adjustment request",
                )
            )
            log.warning("sync.line.rejected", index=index, external_id=line.external_id, transaction_type=line_type)
            continue

        if await idempotency_key_exists(db, agency_id, source, line.external_id):
            report.skipped_duplicate += 1
            log.debug("sync.line.duplicate", external_id=line.external_id)
            continue

        match = match_product(line.description or "", catalog, settings.fuzzy_match_threshold)

        try:
            async with db.begin_nested():
                await append_transaction(
                    db,
                    agency_id=agency_id,
                    description=line.description,
                    transaction_type=line_type,
                    quantity_delta=line.quantity,
                    match=match,
                    unit_price=line.unit_price,
                    external_source=source,
                    external_id=line.external_id,
                    reference_name=line.reference_name,
                    notes=line.notes,
                    recorded_by=recorded_by,
                    occurred_at=line.occurred_at,
                    product_code=line.product_code,
                )
        except DuplicateIngestionError:
            report.skipped_duplicate += 1
            log.debug("sync.line.duplicate", external_id=line.external_id, detected="constraint")
            continue
        except (ValidationError, PersistenceError) as exc:
            report.failed_lines.append(
                FailedLine(
                    index=index,
                    external_id=line.external_id,
                    description=line.description,
                    code=exc.code,
                    reason=exc.message,
                )
            )
            log.warning("sync.line.failed", index=index, external_id=line.external_id, error=exc.message)
            continue

        report.ingested += 1
        if match.is_matched:
            report.matched += 1
        else:
            report.unmatched += 1
        log.debug("sync.line.ingested", external_id=line.external_id, match_tier=match.tier.value)

    report.resolve_status()
    report.completed_at = datetime.utcnow()
    run = SyncRun(
        run_id=uuid.uuid4(),
        agency_id=agency_id,
        source=source,
        transaction_type=transaction_type,
        lines_received=report.lines_received,
        ingested=report.ingested,
        skipped_duplicate=report.skipped_duplicate,
        matched=report.matched,
        unmatched=report.unmatched,
        failed=report.failed,
        status=report.status.value,
        error_message="; ".join(line.reason for line in report.failed_lines[:20]) or None,
        started_at=report.started_at,
        completed_at=report.completed_at,
    )
    db.add(run)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        log.error("sync.batch.commit_failed", error=str(exc))
        raise PersistenceError(f"Could not commit batch: {exc}", agency_id=str(agency_id)) from exc

    report.run_id = run.run_id
    log.info(
        "sync.batch.completed",
        status=report.status.value,
        ingested=report.ingested,
        skipped_duplicate=report.skipped_duplicate,
        matched=report.matched,
        unmatched=report.unmatched,
        failed=report.failed,
    )
    return report


async def ingest_documents(
    db: AsyncSession,
    *,
    agency_id: uuid.UUID,
    kind: str,
    documents: list[dict[str, Any]],
    recorded_by: str | None = None,
    source: str | None = None,
    should_continue: Callable[[], bool] | None = None,
) -> BatchReport:
    """Map source documents of one kind to line items and ingest them."""
    config = {"source": source} if source else None
    try:
        mapper = get_mapper(kind, agency_id=str(agency_id), config=config)
    except ValueError as exc:
        raise ValidationError(f"Unknown source kind '{kind}'", kind=kind) from exc

    batch = mapper.map_documents(documents)
    return await ingest_batch(
        db,
        agency_id=agency_id,
        source=batch.source,
        lines=batch.lines,
        transaction_type=batch.transaction_type,
        should_continue=should_continue,
        recorded_by=recorded_by,
        rejected=batch.rejected,
    )
