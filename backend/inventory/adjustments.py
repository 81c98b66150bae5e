"""
Adjustment Approval Workflow — the human path into the ledger.

    pending ──approve──▶ approved   (appends exactly one adjustment row)
       └────reject───▶ rejected    (no ledger effect)

Both transitions are a compare-and-set on ``status`` (UPDATE … WHERE
status = 'pending'), so two reviewers racing on one request produce one
decision and the loser gets ApprovalConflictError. Approval writes the
status change and the ledger row in one transaction: if the append fails
the whole unit rolls back and the request stays pending for retry.

Positive quantities may be requested but never approved; only stock
reductions reach the ledger. A bulk submission is validated item by item
and stored all-or-nothing.
"""

import uuid
from datetime import datetime
from typing import Any, Mapping, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import ADJUSTMENT_STATUSES, AdjustmentRequest
from inventory.catalog import load_catalog
from inventory.errors import (
    ApprovalConflictError,
    ApprovalPolicyError,
    InventoryError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from inventory.ledger import TransactionType, append_transaction, validate_unit_price
from inventory.matcher import match_product

logger = structlog.get_logger()

ADJUSTMENT_SOURCE = "adjustment"


async def get_adjustment(db: AsyncSession, agency_id: uuid.UUID, request_id: uuid.UUID) -> AdjustmentRequest:
    result = await db.execute(
        select(AdjustmentRequest).where(
            AdjustmentRequest.request_id == request_id,
            AdjustmentRequest.agency_id == agency_id,
        )
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Adjustment request not found", request_id=str(request_id))
    return request


async def list_adjustments(
    db: AsyncSession,
    agency_id: uuid.UUID,
    status: str | None = None,
    limit: int = 50,
) -> list[AdjustmentRequest]:
    """Newest requests first, optionally only one status."""
    query = select(AdjustmentRequest).where(AdjustmentRequest.agency_id == agency_id)
    if status:
        if status not in ADJUSTMENT_STATUSES:
            raise ValidationError(f"Unknown adjustment status '{status}'", status=status)
        query = query.where(AdjustmentRequest.status == status)
    query = query.order_by(AdjustmentRequest.requested_at.desc()).limit(max(1, limit))
    result = await db.execute(query)
    return list(result.scalars().all())


def _new_request(
    *,
    agency_id: uuid.UUID,
    product_ref: str,
    quantity: int,
    reason: str,
    requested_by: str,
    unit_price=0,
    notes: str | None = None,
    requested_at: datetime | None = None,
) -> AdjustmentRequest:
    if not product_ref or not product_ref.strip():
        raise ValidationError("product_ref is required")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        raise ValidationError("Adjustment quantity must be a non-zero integer", quantity=repr(quantity))
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    if not requested_by:
        raise ValidationError("requested_by is required")

    return AdjustmentRequest(
        request_id=uuid.uuid4(),
        agency_id=agency_id,
        product_ref=product_ref.strip(),
        adjustment_quantity=quantity,
        unit_price=validate_unit_price(unit_price),
        reason=reason.strip(),
        notes=notes,
        status="pending",
        requested_by=requested_by,
        requested_at=requested_at or datetime.utcnow(),
    )


async def request_adjustment(
    db: AsyncSession,
    *,
    agency_id: uuid.UUID,
    product_ref: str,
    quantity: int,
    reason: str,
    requested_by: str,
    unit_price=0,
    notes: str | None = None,
) -> AdjustmentRequest:
    """Create a pending request. Either sign is accepted here; zero is not."""
    request = _new_request(
        agency_id=agency_id,
        product_ref=product_ref,
        quantity=quantity,
        reason=reason,
        requested_by=requested_by,
        unit_price=unit_price,
        notes=notes,
    )
    db.add(request)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(f"Could not store adjustment request: {exc}", agency_id=str(agency_id)) from exc

    logger.info(
        "adjustments.requested",
        agency_id=str(agency_id),
        request_id=str(request.request_id),
        quantity=quantity,
        requested_by=requested_by,
    )
    return request


async def request_adjustments(
    db: AsyncSession,
    *,
    agency_id: uuid.UUID,
    items: Sequence[Mapping[str, Any]],
    requested_by: str,
) -> list[AdjustmentRequest]:
    """
    Create several pending requests in one submission.

    Every item is validated before anything is written. One invalid item
    rejects the whole submission with a ValidationError whose ``errors``
    list names each bad item by index; otherwise all requests are stored
    in a single commit.
    """
    if not items:
        raise ValidationError("At least one adjustment item is required")

    requested_at = datetime.utcnow()
    requests: list[AdjustmentRequest] = []
    errors: list[dict[str, Any]] = []
    for index, item in enumerate(items):
        try:
            requests.append(
                _new_request(
                    agency_id=agency_id,
                    product_ref=item.get("product_ref") or "",
                    quantity=item.get("quantity"),
                    reason=item.get("reason") or "",
                    requested_by=requested_by,
                    unit_price=item.get("unit_price") or 0,
                    notes=item.get("notes"),
                    requested_at=requested_at,
                )
            )
        except ValidationError as exc:
            errors.append({"index": index, "message": exc.message})

    if errors:
        raise ValidationError(
            f"{len(errors)} of {len(items)} adjustment items are invalid; nothing was stored",
            errors=errors,
        )

    db.add_all(requests)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(f"Could not store adjustment requests: {exc}", agency_id=str(agency_id)) from exc

    logger.info(
        "adjustments.requested_bulk",
        agency_id=str(agency_id),
        count=len(requests),
        requested_by=requested_by,
    )
    return requests


async def _claim(
    db: AsyncSession,
    request_id: uuid.UUID,
    agency_id: uuid.UUID,
    *,
    status: str,
    reviewer: str,
    review_notes: str | None,
) -> None:
    """Move pending -> ``status``; raise ApprovalConflictError when someone got there first."""
    result = await db.execute(
        update(AdjustmentRequest)
        .where(
            AdjustmentRequest.request_id == request_id,
            AdjustmentRequest.agency_id == agency_id,
            AdjustmentRequest.status == "pending",
        )
        .values(
            status=status,
            reviewed_by=reviewer,
            reviewed_at=datetime.utcnow(),
            review_notes=review_notes,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ApprovalConflictError(
            "Adjustment request is no longer pending",
            request_id=str(request_id),
        )


async def approve(
    db: AsyncSession,
    agency_id: uuid.UUID,
    request_id: uuid.UUID,
    reviewer: str,
    review_notes: str | None = None,
) -> AdjustmentRequest:
    """
    Approve a pending stock reduction and append its ledger row atomically.

    Raises:
      NotFoundError          unknown request for this agency
      ApprovalConflictError  request is not (or no longer) pending
      ApprovalPolicyError    quantity is positive; the request stays pending
      PersistenceError       ledger or status write failed; rolled back
    """
    request = await get_adjustment(db, agency_id, request_id)
    if request.status != "pending":
        raise ApprovalConflictError(
            f"Cannot approve a request in '{request.status}' status",
            request_id=str(request_id),
            status=request.status,
        )
    quantity = request.adjustment_quantity
    if quantity > 0:
        logger.warning("adjustments.policy_blocked", agency_id=str(agency_id), request_id=str(request_id))
        raise ApprovalPolicyError(
            "Positive stock adjustments cannot be approved",
            request_id=str(request_id),
            quantity=quantity,
        )

    settings = get_settings()
    product_ref = request.product_ref
    catalog = await load_catalog(db, agency_id)
    match = match_product(product_ref, catalog, settings.fuzzy_match_threshold)

    try:
        await _claim(
            db, request_id, agency_id, status="approved", reviewer=reviewer, review_notes=review_notes
        )
        txn = await append_transaction(
            db,
            agency_id=agency_id,
            description=product_ref,
            transaction_type=TransactionType.ADJUSTMENT,
            quantity_delta=quantity,
            match=match,
            unit_price=request.unit_price,
            external_source=ADJUSTMENT_SOURCE,
            external_id=str(request_id),
            reference_name=request.reason,
            notes=request.notes,
            recorded_by=reviewer,
        )
        await db.execute(
            update(AdjustmentRequest)
            .where(AdjustmentRequest.request_id == request_id)
            .values(ledger_transaction_id=txn.transaction_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except InventoryError as exc:
        await db.rollback()
        logger.warning(
            "adjustments.approve_failed",
            agency_id=str(agency_id),
            request_id=str(request_id),
            error=exc.message,
        )
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("adjustments.approve_failed", agency_id=str(agency_id), request_id=str(request_id), error=str(exc))
        raise PersistenceError(f"Approval could not be stored: {exc}", request_id=str(request_id)) from exc

    await db.refresh(request)
    logger.info(
        "adjustments.approved",
        agency_id=str(agency_id),
        request_id=str(request_id),
        transaction_id=str(txn.transaction_id),
        quantity=quantity,
        reviewer=reviewer,
    )
    return request


async def reject(
    db: AsyncSession,
    agency_id: uuid.UUID,
    request_id: uuid.UUID,
    reviewer: str,
    review_notes: str | None = None,
) -> AdjustmentRequest:
    """Reject a pending request. No ledger effect."""
    request = await get_adjustment(db, agency_id, request_id)
    if request.status != "pending":
        raise ApprovalConflictError(
            f"Cannot reject a request in '{request.status}' status",
            request_id=str(request_id),
            status=request.status,
        )

    try:
        await _claim(
            db, request_id, agency_id, status="rejected", reviewer=reviewer, review_notes=review_notes
        )
        await db.commit()
    except ApprovalConflictError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PersistenceError(f"Rejection could not be stored: {exc}", request_id=str(request_id)) from exc

    await db.refresh(request)
    logger.info("adjustments.rejected", agency_id=str(agency_id), request_id=str(request_id), reviewer=reviewer)
    return request
