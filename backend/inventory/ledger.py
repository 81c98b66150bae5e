"""
Ledger Store — append-only signed inventory movements.

The ledger is the single source of truth for stock. Rows are written once by
one of two producers (the sync pipeline and the adjustment workflow) and
never updated or deleted; a correction is a new row.

Allowed direction per transaction type:

  external_invoice  > 0   goods received from the supplier feed
  customer_return   > 0   goods coming back from a customer
  sale              < 0   goods sold on a local invoice
  company_return    < 0   goods sent back to the company
  adjustment        < 0   approved stock reduction (increases are policy-blocked)

``append_transaction`` does not commit. The caller owns the unit of work so
an approval can commit its status change and its ledger row together.
"""

import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InventoryTransaction
from inventory.errors import DuplicateIngestionError, PersistenceError, ValidationError
from inventory.matcher import MatchResult
from inventory.parsing import extract_code

logger = structlog.get_logger()


class TransactionType(str, Enum):
    EXTERNAL_INVOICE = "external_invoice"
    CUSTOMER_RETURN = "customer_return"
    SALE = "sale"
    COMPANY_RETURN = "company_return"
    ADJUSTMENT = "adjustment"


STOCK_IN_TYPES = frozenset({TransactionType.EXTERNAL_INVOICE, TransactionType.CUSTOMER_RETURN})
STOCK_OUT_TYPES = frozenset({TransactionType.SALE, TransactionType.COMPANY_RETURN, TransactionType.ADJUSTMENT})


def allowed_sign(transaction_type: TransactionType | str) -> int:
    """+1 for stock-in types, -1 for stock-out types."""
    return 1 if TransactionType(transaction_type) in STOCK_IN_TYPES else -1


def validate_quantity(transaction_type: TransactionType | str, quantity_delta: int) -> TransactionType:
    """Raise ValidationError unless the delta is non-zero and signed for its type."""
    try:
        txn_type = TransactionType(transaction_type)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown transaction type '{transaction_type}'",
            transaction_type=str(transaction_type),
        ) from exc

    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer", quantity_delta=repr(quantity_delta))
    if quantity_delta == 0 or (quantity_delta > 0) != (allowed_sign(txn_type) > 0):
        direction = "positive" if allowed_sign(txn_type) > 0 else "negative"
        raise ValidationError(
            f"{txn_type.value} requires a {direction} quantity, got {quantity_delta}",
            transaction_type=txn_type.value,
            quantity_delta=quantity_delta,
        )
    return txn_type


def validate_unit_price(unit_price) -> Decimal:
    try:
        price = Decimal(str(unit_price if unit_price is not None else 0))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid unit price {unit_price!r}", unit_price=str(unit_price)) from exc
    if not price.is_finite() or price < 0:
        raise ValidationError(f"unit_price must be non-negative, got {unit_price}", unit_price=str(unit_price))
    return price.quantize(Decimal("0.01"))


async def idempotency_key_exists(
    db: AsyncSession,
    agency_id: uuid.UUID,
    external_source: str | None,
    external_id: str | None,
) -> bool:
    if not external_source or not external_id:
        return False
    result = await db.execute(
        select(InventoryTransaction.transaction_id).where(
            InventoryTransaction.agency_id == agency_id,
            InventoryTransaction.external_source == external_source,
            InventoryTransaction.external_id == external_id,
        ).limit(1)
    )
    return result.first() is not None


async def append_transaction(
    db: AsyncSession,
    *,
    agency_id: uuid.UUID,
    description: str,
    transaction_type: TransactionType | str,
    quantity_delta: int,
    match: MatchResult,
    unit_price=0,
    external_source: str | None = None,
    external_id: str | None = None,
    reference_name: str | None = None,
    notes: str | None = None,
    recorded_by: str | None = None,
    occurred_at: datetime | None = None,
    product_code: str | None = None,
) -> InventoryTransaction:
    """
    Validate and flush one ledger row inside the caller's transaction.

    Raises:
      ValidationError          sign / price / description rejected
      DuplicateIngestionError  (external_source, external_id) already present
      PersistenceError         any other storage failure
    """
    if not description or not description.strip():
        raise ValidationError("Product description is required")
    txn_type = validate_quantity(transaction_type, quantity_delta)
    price = validate_unit_price(unit_price)

    key = match.normalized_key
    now = datetime.utcnow()
    txn = InventoryTransaction(
        transaction_id=uuid.uuid4(),
        agency_id=agency_id,
        raw_product_description=description.strip(),
        product_code=product_code or extract_code(description),
        base_name=key.base_name,
        color=key.color,
        size=key.size,
        matched_product_id=match.matched_product_id,
        match_tier=match.tier.value,
        transaction_type=txn_type.value,
        quantity_delta=quantity_delta,
        unit_price=price,
        external_source=external_source,
        external_id=external_id,
        reference_name=reference_name,
        notes=notes,
        recorded_by=recorded_by,
        occurred_at=occurred_at or now,
        recorded_at=now,
    )

    db.add(txn)
    try:
        await db.flush()
    except IntegrityError as exc:
        if external_source and external_id:
            raise DuplicateIngestionError(external_source, external_id) from exc
        raise PersistenceError(f"Ledger rejected row: {exc.orig}", agency_id=str(agency_id)) from exc
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Ledger append failed: {exc}", agency_id=str(agency_id)) from exc

    logger.debug(
        "ledger.appended",
        agency_id=str(agency_id),
        transaction_id=str(txn.transaction_id),
        transaction_type=txn_type.value,
        quantity_delta=quantity_delta,
        match_tier=match.tier.value,
    )
    return txn


async def get_transaction_history(
    db: AsyncSession,
    agency_id: uuid.UUID,
    limit: int = 50,
    *,
    transaction_type: TransactionType | str | None = None,
    product_id: uuid.UUID | None = None,
) -> list[InventoryTransaction]:
    """Most recent ledger rows first."""
    query = select(InventoryTransaction).where(InventoryTransaction.agency_id == agency_id)
    if transaction_type:
        query = query.where(InventoryTransaction.transaction_type == TransactionType(transaction_type).value)
    if product_id:
        query = query.where(InventoryTransaction.matched_product_id == product_id)
    query = query.order_by(
        InventoryTransaction.recorded_at.desc(),
        InventoryTransaction.transaction_id.desc(),
    ).limit(max(1, limit))
    result = await db.execute(query)
    return list(result.scalars().all())
