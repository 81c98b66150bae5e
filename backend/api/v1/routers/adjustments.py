"""
Adjustments Router — request, review and decide stock corrections.

The human-in-the-loop workflow for stock corrections:
  1. Agent requests an adjustment, or several in one bulk submission → status='pending'
  2. Reviewer approves (stock reductions only) or rejects
  3. Approval appends one 'adjustment' row to the ledger in the same commit
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor, get_agency_id, get_db
from api.errors import http_error
from inventory import adjustments
from inventory.errors import InventoryError

router = APIRouter(prefix="/api/v1/adjustments", tags=["adjustments"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AdjustmentResponse(BaseModel):
    request_id: UUID
    agency_id: UUID
    product_ref: str
    adjustment_quantity: int
    unit_price: float
    reason: str
    notes: str | None
    status: str
    requested_by: str
    requested_at: datetime
    reviewed_by: str | None
    reviewed_at: datetime | None
    review_notes: str | None
    ledger_transaction_id: UUID | None

    model_config = {"from_attributes": True}


class AdjustmentCreate(BaseModel):
    product_ref: str = Field(..., min_length=1, max_length=500, description="Product description as stocked")
    quantity: int = Field(..., description="Signed change; only reductions can be approved")
    reason: str = Field(..., min_length=1, max_length=255, examples=["damaged", "recount", "lost"])
    unit_price: float = Field(0, ge=0)
    notes: str | None = None


class AdjustmentBulkCreate(BaseModel):
    items: list[AdjustmentCreate] = Field(..., min_length=1, max_length=200)


class AdjustmentDecision(BaseModel):
    notes: str | None = None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/", response_model=AdjustmentResponse, status_code=201)
async def create_adjustment(
    body: AdjustmentCreate,
    agency_id: UUID = Depends(get_agency_id),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await adjustments.request_adjustment(
            db,
            agency_id=agency_id,
            product_ref=body.product_ref,
            quantity=body.quantity,
            reason=body.reason,
            requested_by=actor,
            unit_price=body.unit_price,
            notes=body.notes,
        )
    except InventoryError as exc:
        raise http_error(exc)


@router.post("/bulk", response_model=list[AdjustmentResponse], status_code=201)
async def create_adjustments_bulk(
    body: AdjustmentBulkCreate,
    agency_id: UUID = Depends(get_agency_id),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Submit several adjustments at once; one invalid item stores none of them."""
    try:
        return await adjustments.request_adjustments(
            db,
            agency_id=agency_id,
            items=[item.model_dump() for item in body.items],
            requested_by=actor,
        )
    except InventoryError as exc:
        raise http_error(exc)


@router.get("/", response_model=list[AdjustmentResponse])
async def list_adjustments(
    status: Literal["pending", "approved", "rejected"] | None = None,
    limit: int = Query(50, ge=1, le=200),
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    return await adjustments.list_adjustments(db, agency_id, status=status, limit=limit)


@router.get("/{request_id}", response_model=AdjustmentResponse)
async def get_adjustment(
    request_id: UUID,
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await adjustments.get_adjustment(db, agency_id, request_id)
    except InventoryError as exc:
        raise http_error(exc)


@router.post("/{request_id}/approve", response_model=AdjustmentResponse)
async def approve_adjustment(
    request_id: UUID,
    body: AdjustmentDecision | None = None,
    agency_id: UUID = Depends(get_agency_id),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending reduction; the ledger row lands in the same commit."""
    try:
        return await adjustments.approve(
            db, agency_id, request_id, reviewer=actor, review_notes=body.notes if body else None
        )
    except InventoryError as exc:
        raise http_error(exc)


@router.post("/{request_id}/reject", response_model=AdjustmentResponse)
async def reject_adjustment(
    request_id: UUID,
    body: AdjustmentDecision | None = None,
    agency_id: UUID = Depends(get_agency_id),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await adjustments.reject(
            db, agency_id, request_id, reviewer=actor, review_notes=body.notes if body else None
        )
    except InventoryError as exc:
        raise http_error(exc)
