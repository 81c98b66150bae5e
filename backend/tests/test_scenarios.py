"""
End-to-end ledger scenarios.

A  first delivery against an empty catalog
B  the catalog gains the product; a new delivery matches it and the earlier
   unmatched delivery is counted under the same product
C  re-delivery of A is skipped
D  a sale reduces stock
E  a positive adjustment is blocked at approval
F  a reduction adjustment is approved
"""

import pytest
from sqlalchemy import select

from db.models import InventoryTransaction, Product
from integrations.base import SourceLine
from inventory import adjustments
from inventory.aggregator import UnmatchedOverview, get_product_stock, get_stock_summary, get_unmatched_overview
from inventory.errors import ApprovalPolicyError
from inventory.parsing import NormalizedKey
from inventory.sync import ingest_batch

RAW = "[SB42] SOLACE-BLACK 42"


async def _ingest(db, agency, external_id, quantity, transaction_type="external_invoice", source="external_feed"):
    return await ingest_batch(
        db,
        agency_id=agency,
        source=source,
        lines=[SourceLine(description=RAW, quantity=quantity, unit_price=500, external_id=external_id)],
        transaction_type=transaction_type,
    )


async def _only_group(db, agency):
    [summary] = await get_stock_summary(db, agency)
    return summary


@pytest.mark.asyncio
class TestLedgerScenarios:
    async def test_a_then_c_then_d_then_e_then_f(self, test_db, seeded_db):
        agency = seeded_db["agency_id"]

        # A
        report = await _ingest(test_db, agency, "INV1:0", 10)
        assert report.ingested == 1
        [txn] = (await test_db.execute(select(InventoryTransaction))).scalars().all()
        assert txn.matched_product_id is None
        summary = await _only_group(test_db, agency)
        assert summary.normalized_key == NormalizedKey("SOLACE", "BLACK", "42")
        assert summary.category == "SOLACE"
        assert (summary.current_stock, summary.stock_in, summary.stock_out) == (10, 10, 0)

        # C
        report = await _ingest(test_db, agency, "INV1:0", 10)
        assert (report.skipped_duplicate, report.ingested) == (1, 0)
        assert (await _only_group(test_db, agency)).current_stock == 10

        # D
        await _ingest(test_db, agency, "SALE1:0", -3, transaction_type="sale", source="local_sale")
        assert (await _only_group(test_db, agency)).current_stock == 7

        # E
        increase = await adjustments.request_adjustment(
            test_db, agency_id=agency, product_ref=RAW, quantity=5, reason="recount", requested_by="agent"
        )
        with pytest.raises(ApprovalPolicyError):
            await adjustments.approve(test_db, agency, increase.request_id, reviewer="lead")
        assert (await adjustments.get_adjustment(test_db, agency, increase.request_id)).status == "pending"
        assert (await _only_group(test_db, agency)).current_stock == 7

        # F
        damaged = await adjustments.request_adjustment(
            test_db, agency_id=agency, product_ref=RAW, quantity=-2, reason="damaged", requested_by="agent"
        )
        await adjustments.approve(test_db, agency, damaged.request_id, reviewer="lead")
        adjustment_rows = (
            await test_db.execute(
                select(InventoryTransaction).where(InventoryTransaction.transaction_type == "adjustment")
            )
        ).scalars().all()
        assert [row.quantity_delta for row in adjustment_rows] == [-2]
        summary = await _only_group(test_db, agency)
        assert summary.current_stock == 5
        assert summary.current_stock == summary.stock_in - summary.stock_out

    async def test_b_catalog_match_takes_catalog_category(self, test_db, seeded_db):
        agency = seeded_db["agency_id"]
        await _ingest(test_db, agency, "INV1:0", 10)

        product = Product(agency_id=agency, name="SOLACE-BLACK", category="Innerwear", sub_category="Solace")
        test_db.add(product)
        await test_db.commit()

        report = await _ingest(test_db, agency, "INV2:0", 4)
        assert (report.ingested, report.matched) == (1, 1)

        latest = (
            await test_db.execute(select(InventoryTransaction).where(InventoryTransaction.external_id == "INV2:0"))
        ).scalar_one()
        assert latest.matched_product_id == product.product_id
        assert latest.match_tier == "fuzzy"

        earlier = (
            await test_db.execute(select(InventoryTransaction).where(InventoryTransaction.external_id == "INV1:0"))
        ).scalar_one()
        assert earlier.matched_product_id is None

        # The earlier unmatched delivery folds into the product on read
        summary = await _only_group(test_db, agency)
        assert summary.group_key == f"product:{product.product_id}"
        assert (summary.category, summary.sub_category) == ("Innerwear", "Solace")
        assert summary.current_stock == 14

    async def test_sale_after_catalog_gains_product_keeps_one_identity(self, test_db, seeded_db):
        agency = seeded_db["agency_id"]
        await _ingest(test_db, agency, "INV1:0", 10)

        product = Product(agency_id=agency, name="SOLACE-BLACK", category="Innerwear", sub_category="Solace")
        test_db.add(product)
        await test_db.commit()
        product_id = product.product_id

        await _ingest(test_db, agency, "SALE1:0", -3, transaction_type="sale", source="local_sale")

        summaries = await get_stock_summary(test_db, agency)
        assert [(s.group_key, s.category, s.current_stock) for s in summaries] == [
            (f"product:{product_id}", "Innerwear", 7)
        ]
        assert (summaries[0].stock_in, summaries[0].stock_out) == (10, 3)
        assert await get_unmatched_overview(test_db, agency) == UnmatchedOverview(0, {}, [])

        single = await get_product_stock(test_db, agency, product_id)
        assert single.current_stock == 7
        assert single.transaction_count == 2
