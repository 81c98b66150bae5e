"""
Inventory Router — derived stock views, ledger history and batch ingestion.

Every number here is recomputed from the ledger on request; nothing reads a
stored running total.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor, get_agency_id, get_db
from api.errors import http_error
from core.config import get_settings
from integrations.base import SourceKind
from inventory.aggregator import (
    StockFilters,
    StockSummary,
    get_category_breakdown,
    get_product_stock,
    get_stock_summary,
    get_unmatched_overview,
)
from inventory.errors import InventoryError
from inventory.ledger import TransactionType, get_transaction_history
from inventory.sync import ingest_documents

settings = get_settings()

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class NormalizedKeyResponse(BaseModel):
    base_name: str
    color: str
    size: str


class StockSummaryResponse(BaseModel):
    group_key: str
    matched_product_id: UUID | None
    normalized_key: NormalizedKeyResponse | None
    product_name: str
    category: str
    sub_category: str
    current_stock: int
    stock_in: int
    stock_out: int
    avg_unit_price: float | None
    total_value: float
    transaction_count: int
    variant_count: int
    stock_status: str  # "in_stock", "low_stock", "out_of_stock"
    first_seen: datetime | None
    last_seen: datetime | None
    sources: list[str]
    transaction_types: list[str]


class CategoryBreakdownResponse(BaseModel):
    category: str
    products: int
    current_stock: int
    total_value: float


class UnmatchedOverviewResponse(BaseModel):
    total_unmatched: int
    unmatched_by_category: dict[str, int]
    sample_descriptions: list[str]


class TransactionResponse(BaseModel):
    transaction_id: UUID
    raw_product_description: str
    product_code: str | None
    base_name: str
    color: str
    size: str
    matched_product_id: UUID | None
    match_tier: str
    transaction_type: str
    quantity_delta: int
    unit_price: float
    external_source: str | None
    external_id: str | None
    reference_name: str | None
    notes: str | None
    recorded_by: str | None
    occurred_at: datetime
    recorded_at: datetime

    model_config = {"from_attributes": True}


class SyncRequest(BaseModel):
    """Source documents of one kind, already fetched by the caller."""

    kind: SourceKind
    documents: list[dict[str, Any]] = Field(default_factory=list)
    source: str | None = Field(None, max_length=50, description="Overrides the mapper's external source name")


class FailedLineResponse(BaseModel):
    index: int
    external_id: str | None
    description: str | None
    code: str
    reason: str


class BatchReportResponse(BaseModel):
    run_id: UUID | None
    source: str
    transaction_type: str | None
    status: str
    lines_received: int
    ingested: int
    skipped_duplicate: int
    matched: int
    unmatched: int
    failed: int
    failed_lines: list[FailedLineResponse]
    aborted: bool


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _summary_response(summary: StockSummary) -> StockSummaryResponse:
    key = summary.normalized_key
    return StockSummaryResponse(
        group_key=summary.group_key,
        matched_product_id=summary.matched_product_id,
        normalized_key=NormalizedKeyResponse(**key._asdict()) if key else None,
        product_name=summary.product_name,
        category=summary.category,
        sub_category=summary.sub_category,
        current_stock=summary.current_stock,
        stock_in=summary.stock_in,
        stock_out=summary.stock_out,
        avg_unit_price=float(summary.avg_unit_price) if summary.avg_unit_price is not None else None,
        total_value=float(summary.total_value),
        transaction_count=summary.transaction_count,
        variant_count=summary.variant_count,
        stock_status=summary.stock_status,
        first_seen=summary.first_seen,
        last_seen=summary.last_seen,
        sources=list(summary.sources),
        transaction_types=list(summary.transaction_types),
    )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/summary", response_model=list[StockSummaryResponse])
async def list_stock(
    search: str | None = Query(None, description="Substring of name, raw description or product code"),
    category: str | None = None,
    stock_status: Literal["in_stock", "low_stock", "out_of_stock"] | None = None,
    matched_only: bool | None = None,
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    """Current stock per product identity, derived from the ledger."""
    filters = StockFilters(
        search=search,
        category=category,
        stock_status=stock_status,
        matched_only=matched_only,
    )
    summaries = await get_stock_summary(db, agency_id, filters)
    return [_summary_response(s) for s in summaries]


@router.get("/products/{product_id}", response_model=StockSummaryResponse)
async def get_product(
    product_id: UUID,
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    """Stock for one catalog product across all its variants."""
    summary = await get_product_stock(db, agency_id, product_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return _summary_response(summary)


@router.get("/categories", response_model=list[CategoryBreakdownResponse])
async def list_categories(
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    """Products, stock and value per standardized category."""
    return [
        CategoryBreakdownResponse(
            category=row.category,
            products=row.products,
            current_stock=row.current_stock,
            total_value=float(row.total_value),
        )
        for row in await get_category_breakdown(db, agency_id)
    ]


@router.get("/unmatched", response_model=UnmatchedOverviewResponse)
async def unmatched_overview(
    sample_size: int = Query(10, ge=0, le=100),
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    """Ledger identities with no catalog product, for manual review."""
    overview = await get_unmatched_overview(db, agency_id, sample_size=sample_size)
    return UnmatchedOverviewResponse(
        total_unmatched=overview.total_unmatched,
        unmatched_by_category=overview.unmatched_by_category,
        sample_descriptions=overview.sample_descriptions,
    )


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    limit: int = Query(settings.history_default_limit, ge=1, le=settings.history_max_limit),
    transaction_type: TransactionType | None = None,
    product_id: UUID | None = None,
    agency_id: UUID = Depends(get_agency_id),
    db: AsyncSession = Depends(get_db),
):
    """Most recent ledger rows first."""
    return await get_transaction_history(
        db,
        agency_id,
        limit,
        transaction_type=transaction_type,
        product_id=product_id,
    )


@router.post("/sync", response_model=BatchReportResponse)
async def sync_documents(
    body: SyncRequest,
    agency_id: UUID = Depends(get_agency_id),
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Ingest a batch of source documents. Partial success is a normal outcome:
    the report always carries per-line counts and failures.
    """
    try:
        report = await ingest_documents(
            db,
            agency_id=agency_id,
            kind=body.kind.value,
            documents=body.documents,
            recorded_by=actor,
            source=body.source,
        )
    except InventoryError as exc:
        raise http_error(exc)
    return BatchReportResponse(**report.to_dict())
