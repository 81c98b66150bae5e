"""
Threadcount Database Models

Multi-tenant via agency_id on all tables.

Tables:
  1. agencies                - Tenant organizations
  2. products                - Canonical product catalog (read-only to the ledger core)
  3. inventory_transactions  - Append-only signed stock movements (the ledger)
  4. adjustment_requests     - Human-requested stock corrections awaiting review
  5. sync_runs               - One audit row per ingested batch
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


# Alias so Column(UUID(as_uuid=True)) reads the same on every dialect
def UUID(as_uuid=True):
    return GUID()


from sqlalchemy.orm import relationship

from db.session import Base

TRANSACTION_TYPES = ("external_invoice", "customer_return", "sale", "company_return", "adjustment")
ADJUSTMENT_STATUSES = ("pending", "approved", "rejected")
SYNC_STATUSES = ("success", "partial", "failed", "no_data")

# ─── 1. Agencies ───────────────────────────────────────────────────────────


class Agency(Base):
    __tablename__ = "agencies"

    agency_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (CheckConstraint("status IN ('active', 'inactive')", name="ck_agency_status"),)

    products = relationship("Product", back_populates="agency", cascade="all, delete-orphan")


# ─── 2. Products ───────────────────────────────────────────────────────────


class Product(Base):
    """Canonical catalog entry. Owned by the catalog service; the ledger only reads it."""

    __tablename__ = "products"

    product_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), ForeignKey("agencies.agency_id"), nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    sub_category = Column(String(100))
    colors = Column(JSON, nullable=False, default=list)
    sizes = Column(JSON, nullable=False, default=list)
    selling_price = Column(Numeric(12, 2), nullable=False, default=0)
    billing_price = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_products_agency", "agency_id"),)

    agency = relationship("Agency", back_populates="products")


# ─── 3. Inventory Transactions (ledger) ────────────────────────────────────


class InventoryTransaction(Base):
    """One signed stock movement. Rows are inserted once and never updated or deleted."""

    __tablename__ = "inventory_transactions"

    transaction_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), ForeignKey("agencies.agency_id"), nullable=False)
    raw_product_description = Column(String(500), nullable=False)
    product_code = Column(String(50))
    base_name = Column(String(255), nullable=False)
    color = Column(String(50), nullable=False, default="Default")
    size = Column(String(20), nullable=False, default="Default")
    # Weak reference: used for grouping only, the catalog row is never owned here
    matched_product_id = Column(UUID(as_uuid=True), nullable=True)
    match_tier = Column(String(10), nullable=False, default="none")
    transaction_type = Column(String(20), nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    external_source = Column(String(50))
    external_id = Column(String(255))
    reference_name = Column(String(255))
    notes = Column(Text)
    recorded_by = Column(String(255))
    occurred_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    recorded_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("agency_id", "external_source", "external_id", name="uq_inventory_txn_external_ref"),
        Index("ix_inventory_txn_agency_time", "agency_id", "occurred_at"),
        Index("ix_inventory_txn_matched_product", "agency_id", "matched_product_id"),
        Index("ix_inventory_txn_normalized_key", "agency_id", "base_name", "color", "size"),
        CheckConstraint(
            "transaction_type IN ('external_invoice', 'customer_return', 'sale', 'company_return', 'adjustment')",
            name="ck_inventory_txn_type",
        ),
        CheckConstraint(
            "(transaction_type IN ('external_invoice', 'customer_return') AND quantity_delta > 0)"
            " OR (transaction_type IN ('sale', 'company_return', 'adjustment') AND quantity_delta < 0)",
            name="ck_inventory_txn_sign",
        ),
        CheckConstraint("unit_price >= 0", name="ck_inventory_txn_price_nonnegative"),
        CheckConstraint("match_tier IN ('exact', 'code', 'fuzzy', 'none')", name="ck_inventory_txn_match_tier"),
    )


# ─── 4. Adjustment Requests ────────────────────────────────────────────────


class AdjustmentRequest(Base):
    """A stock correction requested by an agent and decided once by a reviewer."""

    __tablename__ = "adjustment_requests"

    request_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), ForeignKey("agencies.agency_id"), nullable=False)
    product_ref = Column(String(500), nullable=False)
    adjustment_quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    reason = Column(String(255), nullable=False)
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="pending")
    requested_by = Column(String(255), nullable=False)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reviewed_by = Column(String(255))
    reviewed_at = Column(DateTime)
    review_notes = Column(Text)
    ledger_transaction_id = Column(
        UUID(as_uuid=True), ForeignKey("inventory_transactions.transaction_id"), nullable=True
    )

    __table_args__ = (
        Index("ix_adjustments_agency_status", "agency_id", "status"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_adjustment_status"),
        CheckConstraint("adjustment_quantity != 0", name="ck_adjustment_quantity_nonzero"),
        CheckConstraint("unit_price >= 0", name="ck_adjustment_price_nonnegative"),
    )


# ─── 5. Sync Runs ──────────────────────────────────────────────────────────


class SyncRun(Base):
    """Audit trail of every batch pushed through the sync orchestrator."""

    __tablename__ = "sync_runs"

    run_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), ForeignKey("agencies.agency_id"), nullable=False)
    source = Column(String(50), nullable=False)
    transaction_type = Column(String(20))
    lines_received = Column(Integer, nullable=False, default=0)
    ingested = Column(Integer, nullable=False, default=0)
    skipped_duplicate = Column(Integer, nullable=False, default=0)
    matched = Column(Integer, nullable=False, default=0)
    unmatched = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)
    error_message = Column(Text)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_sync_runs_agency_started", "agency_id", "started_at"),
        CheckConstraint("status IN ('success', 'partial', 'failed', 'no_data')", name="ck_sync_run_status"),
    )
