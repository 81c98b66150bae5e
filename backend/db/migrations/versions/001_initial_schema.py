"""
Initial schema - agencies, catalog, ledger, adjustments, sync runs

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Agencies
    op.create_table(
        "agencies",
        sa.Column("agency_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="ck_agency_status"),
    )

    # 2. Products (catalog, read-only to the ledger)
    op.create_table(
        "products",
        sa.Column("product_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", UUID(as_uuid=True), sa.ForeignKey("agencies.agency_id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("sub_category", sa.String(100)),
        sa.Column("colors", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("sizes", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("selling_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("billing_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_products_agency", "products", ["agency_id"])

    # 3. Inventory transactions (append-only ledger)
    op.create_table(
        "inventory_transactions",
        sa.Column(
            "transaction_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column("agency_id", UUID(as_uuid=True), sa.ForeignKey("agencies.agency_id"), nullable=False),
        sa.Column("raw_product_description", sa.String(500), nullable=False),
        sa.Column("product_code", sa.String(50)),
        sa.Column("base_name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(50), nullable=False, server_default="Default"),
        sa.Column("size", sa.String(20), nullable=False, server_default="Default"),
        sa.Column("matched_product_id", UUID(as_uuid=True), nullable=True),
        sa.Column("match_tier", sa.String(10), nullable=False, server_default="none"),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("quantity_delta", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("external_source", sa.String(50)),
        sa.Column("external_id", sa.String(255)),
        sa.Column("reference_name", sa.String(255)),
        sa.Column("notes", sa.Text),
        sa.Column("recorded_by", sa.String(255)),
        sa.Column("occurred_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("recorded_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("agency_id", "external_source", "external_id", name="uq_inventory_txn_external_ref"),
        sa.CheckConstraint(
            "transaction_type IN ('external_invoice', 'customer_return', 'sale', 'company_return', 'adjustment')",
            name="ck_inventory_txn_type",
        ),
        sa.CheckConstraint(
            "(transaction_type IN ('external_invoice', 'customer_return') AND quantity_delta > 0)"
            " OR (transaction_type IN ('sale', 'company_return', 'adjustment') AND quantity_delta < 0)",
            name="ck_inventory_txn_sign",
        ),
        sa.CheckConstraint("unit_price >= 0", name="ck_inventory_txn_price_nonnegative"),
        sa.CheckConstraint("match_tier IN ('exact', 'code', 'fuzzy', 'none')", name="ck_inventory_txn_match_tier"),
    )
    op.create_index("ix_inventory_txn_agency_time", "inventory_transactions", ["agency_id", "occurred_at"])
    op.create_index(
        "ix_inventory_txn_matched_product", "inventory_transactions", ["agency_id", "matched_product_id"]
    )
    op.create_index(
        "ix_inventory_txn_normalized_key", "inventory_transactions", ["agency_id", "base_name", "color", "size"]
    )

    # Ledger rows are never updated or deleted
    op.execute(
        """
        CREATE OR REPLACE FUNCTION inventory_transactions_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'inventory_transactions is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        "CREATE TRIGGER trg_inventory_transactions_immutable "
        "BEFORE UPDATE OR DELETE ON inventory_transactions "
        "FOR EACH ROW EXECUTE FUNCTION inventory_transactions_immutable()"
    )

    # 4. Adjustment requests
    op.create_table(
        "adjustment_requests",
        sa.Column("request_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", UUID(as_uuid=True), sa.ForeignKey("agencies.agency_id"), nullable=False),
        sa.Column("product_ref", sa.String(500), nullable=False),
        sa.Column("adjustment_quantity", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("requested_by", sa.String(255), nullable=False),
        sa.Column("requested_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("reviewed_by", sa.String(255)),
        sa.Column("reviewed_at", sa.DateTime),
        sa.Column("review_notes", sa.Text),
        sa.Column(
            "ledger_transaction_id",
            UUID(as_uuid=True),
            sa.ForeignKey("inventory_transactions.transaction_id"),
            nullable=True,
        ),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_adjustment_status"),
        sa.CheckConstraint("adjustment_quantity != 0", name="ck_adjustment_quantity_nonzero"),
        sa.CheckConstraint("unit_price >= 0", name="ck_adjustment_price_nonnegative"),
    )
    op.create_index("ix_adjustments_agency_status", "adjustment_requests", ["agency_id", "status"])

    # 5. Sync runs
    op.create_table(
        "sync_runs",
        sa.Column("run_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", UUID(as_uuid=True), sa.ForeignKey("agencies.agency_id"), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("transaction_type", sa.String(20)),
        sa.Column("lines_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("ingested", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_duplicate", sa.Integer, nullable=False, server_default="0"),
        sa.Column("matched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unmatched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text),
        sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
        sa.CheckConstraint("status IN ('success', 'partial', 'failed', 'no_data')", name="ck_sync_run_status"),
    )
    op.create_index("ix_sync_runs_agency_started", "sync_runs", ["agency_id", "started_at"])


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_inventory_transactions_immutable ON inventory_transactions")
    op.execute("DROP FUNCTION IF EXISTS inventory_transactions_immutable()")
    tables = [
        "sync_runs",
        "adjustment_requests",
        "inventory_transactions",
        "products",
        "agencies",
    ]
    for table in tables:
        op.drop_table(table)
