"""
API Integration Tests — Adjustment request / approve / reject lifecycle.
"""

import uuid

import pytest
from httpx import AsyncClient

PRODUCT_REF = "[SB42] SOLACE-BLACK 42"


async def _create(client: AsyncClient, quantity: int, reason: str = "damaged"):
    return await client.post(
        "/api/v1/adjustments/",
        json={"product_ref": PRODUCT_REF, "quantity": quantity, "reason": reason, "unit_price": 500},
    )


async def _stock(client: AsyncClient) -> int:
    resp = await client.get("/api/v1/inventory/summary", params={"search": "SB42"})
    return sum(row["current_stock"] for row in resp.json())


@pytest.fixture
async def delivered(client: AsyncClient, seeded_db):
    invoice = {
        "id": "INV1",
        "order_lines": [{"product_name": PRODUCT_REF, "qty_delivered": 10, "price_unit": 500}],
    }
    resp = await client.post("/api/v1/inventory/sync", json={"kind": "external_invoice", "documents": [invoice]})
    assert resp.json()["ingested"] == 1
    return seeded_db


@pytest.mark.asyncio
class TestAdjustmentsAPI:
    async def test_create_is_pending(self, client: AsyncClient, seeded_db):
        resp = await _create(client, -2)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending"
        assert data["requested_by"] == "agent@threadcount.test"
        assert data["ledger_transaction_id"] is None

    async def test_create_rejects_zero(self, client: AsyncClient, seeded_db):
        resp = await _create(client, 0)
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"

    async def test_approve_reduction_changes_stock(self, client: AsyncClient, delivered):
        request_id = (await _create(client, -2)).json()["request_id"]

        resp = await client.post(f"/api/v1/adjustments/{request_id}/approve", json={"notes": "checked shelf"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "approved"
        assert data["reviewed_by"] == "agent@threadcount.test"
        assert data["review_notes"] == "checked shelf"
        assert data["ledger_transaction_id"] is not None
        assert await _stock(client) == 8

        resp = await client.get("/api/v1/inventory/transactions", params={"transaction_type": "adjustment"})
        [row] = resp.json()
        assert row["transaction_id"] == data["ledger_transaction_id"]
        assert row["external_id"] == request_id

    async def test_positive_approval_is_unprocessable(self, client: AsyncClient, delivered):
        request_id = (await _create(client, 5, reason="recount")).json()["request_id"]

        resp = await client.post(f"/api/v1/adjustments/{request_id}/approve")
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "APPROVAL_POLICY_VIOLATION"

        assert (await client.get(f"/api/v1/adjustments/{request_id}")).json()["status"] == "pending"
        assert await _stock(client) == 10

    async def test_second_approval_conflicts(self, client: AsyncClient, delivered):
        request_id = (await _create(client, -1)).json()["request_id"]
        assert (await client.post(f"/api/v1/adjustments/{request_id}/approve")).status_code == 200

        resp = await client.post(f"/api/v1/adjustments/{request_id}/approve")
        assert resp.status_code == 409
        assert await _stock(client) == 9

    async def test_reject(self, client: AsyncClient, delivered):
        request_id = (await _create(client, -4)).json()["request_id"]

        resp = await client.post(f"/api/v1/adjustments/{request_id}/reject", json={"notes": "found them"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"
        assert await _stock(client) == 10

        resp = await client.post(f"/api/v1/adjustments/{request_id}/approve")
        assert resp.status_code == 409

    async def test_unknown_request_404(self, client: AsyncClient, seeded_db):
        unknown = uuid.uuid4()
        assert (await client.get(f"/api/v1/adjustments/{unknown}")).status_code == 404
        assert (await client.post(f"/api/v1/adjustments/{unknown}/approve")).status_code == 404
        assert (await client.post(f"/api/v1/adjustments/{unknown}/reject")).status_code == 404

    async def test_list_by_status(self, client: AsyncClient, seeded_db):
        first = (await _create(client, -1)).json()["request_id"]
        await _create(client, -3)
        await client.post(f"/api/v1/adjustments/{first}/reject")

        assert len((await client.get("/api/v1/adjustments/")).json()) == 2
        pending = (await client.get("/api/v1/adjustments/", params={"status": "pending"})).json()
        assert [row["adjustment_quantity"] for row in pending] == [-3]

        resp = await client.get("/api/v1/adjustments/", params={"status": "archived"})
        assert resp.status_code == 422

    async def test_bulk_create(self, client: AsyncClient, seeded_db):
        items = [
            {"product_ref": PRODUCT_REF, "quantity": -2, "reason": "damaged"},
            {"product_ref": "COLOR VEST M", "quantity": -1, "reason": "lost", "unit_price": 300},
        ]
        resp = await client.post("/api/v1/adjustments/bulk", json={"items": items})
        assert resp.status_code == 201
        data = resp.json()
        assert [row["product_ref"] for row in data] == [PRODUCT_REF, "COLOR VEST M"]
        assert {row["status"] for row in data} == {"pending"}
        assert len((await client.get("/api/v1/adjustments/")).json()) == 2

    async def test_bulk_create_is_all_or_nothing(self, client: AsyncClient, seeded_db):
        items = [
            {"product_ref": PRODUCT_REF, "quantity": -2, "reason": "damaged"},
            {"product_ref": PRODUCT_REF, "quantity": 0, "reason": "recount"},
        ]
        resp = await client.post("/api/v1/adjustments/bulk", json={"items": items})
        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert [error["index"] for error in detail["errors"]] == [1]
        assert (await client.get("/api/v1/adjustments/")).json() == []

    async def test_bulk_create_requires_items(self, client: AsyncClient, seeded_db):
        resp = await client.post("/api/v1/adjustments/bulk", json={"items": []})
        assert resp.status_code == 422
