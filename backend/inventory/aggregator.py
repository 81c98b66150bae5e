"""
Stock Aggregator — current stock derived from the ledger, never stored.

Grouping:
  - ledger rows with a matched product group by that product (all variants)
  - unmatched rows group by their normalized (base_name, color, size) key
  - an unmatched group whose earliest description now resolves against the
    current catalog folds into that product's group; every row of the
    variant moves together and the stored rows are left untouched

Per group:
  current_stock = Σ quantity_delta
  stock_in      = Σ max(quantity_delta, 0)
  stock_out     = Σ max(-quantity_delta, 0)
  avg_unit_price over rows with unit_price > 0

There is no running-total column anywhere. Every call reads one ledger
snapshot (a single SELECT) and folds it with ``summarize``, so
current_stock == stock_in - stock_out holds by construction.
"""

import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import InventoryTransaction
from inventory.catalog import CatalogEntry, load_catalog, load_products
from inventory.categories import standardize
from inventory.matcher import DEFAULT_FUZZY_THRESHOLD, match_product
from inventory.parsing import NormalizedKey

logger = structlog.get_logger()

CENT = Decimal("0.01")


@dataclass
class StockFilters:
    search: str | None = None
    category: str | None = None
    stock_status: str | None = None  # in_stock, low_stock, out_of_stock
    matched_only: bool | None = None  # True: catalog products only, False: unmatched only


@dataclass(frozen=True)
class StockSummary:
    agency_id: uuid.UUID
    group_key: str
    matched_product_id: uuid.UUID | None
    normalized_key: NormalizedKey | None
    product_name: str
    category: str
    sub_category: str
    current_stock: int
    stock_in: int
    stock_out: int
    avg_unit_price: Decimal | None
    total_value: Decimal
    transaction_count: int
    variant_count: int
    first_seen: datetime
    last_seen: datetime
    stock_status: str
    sources: tuple[str, ...] = ()
    transaction_types: tuple[str, ...] = ()
    sample_description: str = ""
    search_terms: frozenset[str] = field(default=frozenset(), repr=False, compare=False)


@dataclass(frozen=True)
class CategoryBreakdown:
    category: str
    products: int
    current_stock: int
    total_value: Decimal


@dataclass(frozen=True)
class UnmatchedOverview:
    total_unmatched: int
    unmatched_by_category: dict[str, int]
    sample_descriptions: list[str]


@dataclass
class _Group:
    agency_id: uuid.UUID
    matched_product_id: uuid.UUID | None
    normalized_key: NormalizedKey | None
    current_stock: int = 0
    stock_in: int = 0
    stock_out: int = 0
    price_total: Decimal = Decimal("0")
    priced_count: int = 0
    transaction_count: int = 0
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    earliest: tuple | None = None
    earliest_description: str = ""
    variants: set = field(default_factory=set)
    sources: set = field(default_factory=set)
    transaction_types: set = field(default_factory=set)
    search_text: set = field(default_factory=set)

    def add(self, row) -> None:
        delta = row.quantity_delta
        self.current_stock += delta
        if delta > 0:
            self.stock_in += delta
        else:
            self.stock_out += -delta

        price = Decimal(str(row.unit_price or 0))
        if price > 0:
            self.price_total += price
            self.priced_count += 1

        self.transaction_count += 1
        self.variants.add((row.color, row.size))
        if row.external_source:
            self.sources.add(row.external_source)
        self.transaction_types.add(row.transaction_type)
        self.search_text.add(row.raw_product_description.casefold())
        if row.product_code:
            self.search_text.add(row.product_code.casefold())

        if self.first_seen is None or row.occurred_at < self.first_seen:
            self.first_seen = row.occurred_at
        if self.last_seen is None or row.occurred_at > self.last_seen:
            self.last_seen = row.occurred_at

        # The earliest appended row never changes, so it pins the group's category
        order = (row.recorded_at, str(row.transaction_id))
        if self.earliest is None or order < self.earliest:
            self.earliest = order
            self.earliest_description = row.raw_product_description


def group_key_for(row) -> str:
    if row.matched_product_id is not None:
        return f"product:{row.matched_product_id}"
    return f"variant:{row.base_name}|{row.color}|{row.size}"


def resolve_unmatched(
    rows: Iterable,
    catalog: Iterable[CatalogEntry],
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> dict[str, uuid.UUID]:
    """
    Map unmatched variant groups to the catalog product they resolve to now.

    Each group is resolved once, from its earliest recorded description, so
    all of its rows land in the same product group.
    """
    catalog = tuple(catalog)
    if not catalog:
        return {}

    earliest: dict[str, tuple] = {}
    for row in rows:
        if row.matched_product_id is not None:
            continue
        key = group_key_for(row)
        order = (row.recorded_at, str(row.transaction_id))
        if key not in earliest or order < earliest[key][0]:
            earliest[key] = (order, row.raw_product_description)

    resolved = {}
    for key, (_, description) in earliest.items():
        match = match_product(description, catalog, threshold)
        if match.is_matched:
            resolved[key] = match.matched_product_id
    return resolved


def stock_status(current_stock: int, low_stock_threshold: int) -> str:
    if current_stock <= 0:
        return "out_of_stock"
    if current_stock <= low_stock_threshold:
        return "low_stock"
    return "in_stock"


def summarize(
    rows: Iterable,
    products: dict[uuid.UUID, CatalogEntry] | None = None,
    *,
    low_stock_threshold: int = 5,
    default_category: str = "General",
    default_sub_category: str = "General",
    resolved: dict[str, uuid.UUID] | None = None,
) -> list[StockSummary]:
    """
    Fold ledger rows into one StockSummary per grouping key. Pure.

    ``resolved`` maps variant group keys to a catalog product (see
    ``resolve_unmatched``); those rows are counted under the product.
    """
    products = products or {}
    groups: dict[str, _Group] = {}

    for row in rows:
        key = group_key_for(row)
        product_id = row.matched_product_id
        if product_id is None and resolved and key in resolved:
            product_id = resolved[key]
            key = f"product:{product_id}"
        group = groups.get(key)
        if group is None:
            normalized = None if product_id is not None else NormalizedKey(row.base_name, row.color, row.size)
            group = groups[key] = _Group(
                agency_id=row.agency_id,
                matched_product_id=product_id,
                normalized_key=normalized,
            )
        group.add(row)

    summaries = []
    for key, group in groups.items():
        product = products.get(group.matched_product_id) if group.matched_product_id else None
        category, sub_category = standardize(
            group.earliest_description,
            product,
            default_category=default_category,
            default_sub_category=default_sub_category,
        )
        if product is not None:
            name = product.name
        elif group.normalized_key is not None:
            name = group.normalized_key.base_name
        else:
            name = group.earliest_description

        avg_price = (group.price_total / group.priced_count).quantize(CENT) if group.priced_count else None
        total_value = (Decimal(group.current_stock) * (avg_price or Decimal("0"))).quantize(CENT)

        summaries.append(
            StockSummary(
                agency_id=group.agency_id,
                group_key=key,
                matched_product_id=group.matched_product_id,
                normalized_key=group.normalized_key,
                product_name=name,
                category=category,
                sub_category=sub_category,
                current_stock=group.current_stock,
                stock_in=group.stock_in,
                stock_out=group.stock_out,
                avg_unit_price=avg_price,
                total_value=total_value,
                transaction_count=group.transaction_count,
                variant_count=len(group.variants),
                first_seen=group.first_seen,
                last_seen=group.last_seen,
                stock_status=stock_status(group.current_stock, low_stock_threshold),
                sources=tuple(sorted(group.sources)),
                transaction_types=tuple(sorted(group.transaction_types)),
                sample_description=group.earliest_description,
                search_terms=frozenset(group.search_text | {name.casefold()}),
            )
        )

    summaries.sort(key=lambda s: (s.product_name.upper(), s.group_key))
    return summaries


def apply_filters(summaries: Iterable[StockSummary], filters: StockFilters | None) -> list[StockSummary]:
    if filters is None:
        return list(summaries)
    needle = (filters.search or "").strip().casefold()
    category = (filters.category or "").strip().casefold()

    selected = []
    for summary in summaries:
        if needle and not any(needle in term for term in summary.search_terms):
            continue
        if category and summary.category.casefold() != category:
            continue
        if filters.stock_status and summary.stock_status != filters.stock_status:
            continue
        if filters.matched_only is True and summary.matched_product_id is None:
            continue
        if filters.matched_only is False and summary.matched_product_id is not None:
            continue
        selected.append(summary)
    return selected


# ─── Ledger reads ───────────────────────────────────────────────────────────


async def _load_rows(db: AsyncSession, agency_id: uuid.UUID) -> list:
    query = select(
        InventoryTransaction.transaction_id,
        InventoryTransaction.agency_id,
        InventoryTransaction.raw_product_description,
        InventoryTransaction.product_code,
        InventoryTransaction.base_name,
        InventoryTransaction.color,
        InventoryTransaction.size,
        InventoryTransaction.matched_product_id,
        InventoryTransaction.transaction_type,
        InventoryTransaction.quantity_delta,
        InventoryTransaction.unit_price,
        InventoryTransaction.external_source,
        InventoryTransaction.occurred_at,
        InventoryTransaction.recorded_at,
    ).where(InventoryTransaction.agency_id == agency_id)
    result = await db.execute(query)
    return list(result.all())


async def _summaries_for(db: AsyncSession, agency_id: uuid.UUID) -> list[StockSummary]:
    settings = get_settings()
    rows = await _load_rows(db, agency_id)
    catalog = await load_catalog(db, agency_id)
    return summarize(
        rows,
        {entry.product_id: entry for entry in catalog},
        resolved=resolve_unmatched(rows, catalog, settings.fuzzy_match_threshold),
        low_stock_threshold=settings.low_stock_threshold,
        default_category=settings.default_category,
        default_sub_category=settings.default_sub_category,
    )


async def get_stock_summary(
    db: AsyncSession,
    agency_id: uuid.UUID,
    filters: StockFilters | None = None,
) -> list[StockSummary]:
    """Full-catalog stock view for an agency, optionally filtered."""
    summaries = apply_filters(await _summaries_for(db, agency_id), filters)
    logger.debug("stock.summary.computed", agency_id=str(agency_id), groups=len(summaries))
    return summaries


async def get_product_stock(
    db: AsyncSession, agency_id: uuid.UUID, product_id: uuid.UUID
) -> StockSummary | None:
    """Stock for one catalog product; a product with no movements reports zero."""
    group_key = f"product:{product_id}"
    for summary in await _summaries_for(db, agency_id):
        if summary.group_key == group_key:
            return summary

    products = await load_products(db, agency_id, {product_id})
    product = products.get(product_id)
    if product is None:
        return None

    settings = get_settings()
    category, sub_category = standardize(
        product.name,
        product,
        default_category=settings.default_category,
        default_sub_category=settings.default_sub_category,
    )
    return StockSummary(
        agency_id=agency_id,
        group_key=group_key,
        matched_product_id=product_id,
        normalized_key=None,
        product_name=product.name,
        category=category,
        sub_category=sub_category,
        current_stock=0,
        stock_in=0,
        stock_out=0,
        avg_unit_price=None,
        total_value=Decimal("0.00"),
        transaction_count=0,
        variant_count=0,
        first_seen=None,
        last_seen=None,
        stock_status="out_of_stock",
    )


async def get_category_breakdown(db: AsyncSession, agency_id: uuid.UUID) -> list[CategoryBreakdown]:
    """Product count, stock and value per standardized category."""
    products: Counter = Counter()
    stock: Counter = Counter()
    value: dict[str, Decimal] = defaultdict(Decimal)
    for summary in await _summaries_for(db, agency_id):
        products[summary.category] += 1
        stock[summary.category] += summary.current_stock
        value[summary.category] += summary.total_value

    return [
        CategoryBreakdown(
            category=category,
            products=products[category],
            current_stock=stock[category],
            total_value=value[category].quantize(CENT),
        )
        for category in sorted(products)
    ]


async def get_unmatched_overview(
    db: AsyncSession, agency_id: uuid.UUID, sample_size: int = 10
) -> UnmatchedOverview:
    """Unmatched groups awaiting a catalog product, for manual review."""
    unmatched = [s for s in await _summaries_for(db, agency_id) if s.matched_product_id is None]
    by_category = Counter(s.category for s in unmatched)
    return UnmatchedOverview(
        total_unmatched=len(unmatched),
        unmatched_by_category=dict(sorted(by_category.items())),
        sample_descriptions=[s.sample_description for s in unmatched[:sample_size]],
    )
