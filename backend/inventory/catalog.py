"""
Catalog snapshot — the read-only view of products the matcher works against.

Products belong to the catalog service. The ledger core only ever reads a
frozen, agency-scoped snapshot, so matching stays a pure function of
(description, snapshot).
"""

import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product


@dataclass(frozen=True)
class CatalogEntry:
    product_id: uuid.UUID
    name: str
    category: str | None = None
    sub_category: str | None = None
    colors: tuple[str, ...] = field(default_factory=tuple)
    sizes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, product: Product) -> "CatalogEntry":
        return cls(
            product_id=product.product_id,
            name=product.name,
            category=product.category,
            sub_category=product.sub_category,
            colors=tuple(product.colors or ()),
            sizes=tuple(product.sizes or ()),
        )


def snapshot(entries) -> tuple[CatalogEntry, ...]:
    """Freeze entries in the stable order every matcher stage iterates in."""
    return tuple(sorted(entries, key=lambda e: (e.name.strip().upper(), str(e.product_id))))


async def load_catalog(db: AsyncSession, agency_id: uuid.UUID) -> tuple[CatalogEntry, ...]:
    """Load the agency's catalog as an immutable, ordered snapshot."""
    result = await db.execute(select(Product).where(Product.agency_id == agency_id))
    return snapshot(CatalogEntry.from_model(p) for p in result.scalars().all())


async def load_products(
    db: AsyncSession, agency_id: uuid.UUID, product_ids
) -> dict[uuid.UUID, CatalogEntry]:
    ids = {pid for pid in product_ids if pid is not None}
    if not ids:
        return {}
    result = await db.execute(
        select(Product).where(Product.agency_id == agency_id, Product.product_id.in_(ids))
    )
    return {p.product_id: CatalogEntry.from_model(p) for p in result.scalars().all()}
