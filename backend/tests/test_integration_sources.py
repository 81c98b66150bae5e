"""
Tests for the source document mappers — pure document -> SourceLine mapping.
"""

import json
from datetime import datetime

import pytest

from integrations import (
    CompanyReturnMapper,
    CustomerReturnMapper,
    InvoiceFeedMapper,
    SalesInvoiceMapper,
    SourceKind,
    get_mapper,
)
from integrations.base import absolute_quantity

AGENCY = "00000000-0000-0000-0000-000000000001"


def _invoice(order_lines, **extra):
    return {"id": "INV/2024/0042", "invoice_date": "2024-03-01T09:30:00Z", "order_lines": order_lines, **extra}


class TestRegistry:
    @pytest.mark.parametrize(
        "kind, mapper_cls",
        [
            ("external_invoice", InvoiceFeedMapper),
            ("sale", SalesInvoiceMapper),
            ("customer_return", CustomerReturnMapper),
            ("company_return", CompanyReturnMapper),
        ],
    )
    def test_get_mapper(self, kind, mapper_cls):
        mapper = get_mapper(kind, agency_id=AGENCY)
        assert isinstance(mapper, mapper_cls)
        assert mapper.transaction_type == kind

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            get_mapper("transfer", agency_id=AGENCY)

    def test_source_override(self):
        mapper = get_mapper(SourceKind.EXTERNAL_INVOICE, agency_id=AGENCY, config={"source": "erp_eu"})
        assert mapper.source == "erp_eu"
        assert mapper.map_documents([]).source == "erp_eu"


class TestAbsoluteQuantity:
    @pytest.mark.parametrize("value, expected", [(5, 5), (-5, 5), ("7", 7), (" -3 ", 3), (4.0, 4)])
    def test_valid(self, value, expected):
        assert absolute_quantity(value) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", "", 1.5, "NaN"])
    def test_invalid(self, value):
        assert absolute_quantity(value) is None


class TestInvoiceFeedMapper:
    def test_maps_lines_with_positional_external_ids(self):
        batch = InvoiceFeedMapper(AGENCY).map_documents(
            [
                _invoice(
                    [
                        {"product_name": "[SB42] SOLACE-BLACK 42", "qty_delivered": 10, "price_unit": 500},
                        {"product_name": "BRITNY-WHITE XL", "qty_delivered": "-2", "price_unit": "750.00"},
                    ],
                    partner_name="Head Office",
                )
            ]
        )
        assert batch.source == "external_feed"
        assert batch.rejected == []
        first, second = batch.lines
        assert (first.external_id, first.quantity) == ("INV/2024/0042:0", 10)
        assert (second.external_id, second.quantity) == ("INV/2024/0042:1", 2)
        assert first.transaction_type == "external_invoice"
        assert first.reference_name == "Head Office"
        assert first.notes == "Imported from external invoice INV/2024/0042"
        assert first.occurred_at == datetime(2024, 3, 1, 9, 30)

    def test_order_lines_as_json_string(self):
        lines = json.dumps([{"product_name": "COLOR VEST M", "qty_delivered": 3, "price_unit": 300}])
        batch = InvoiceFeedMapper(AGENCY).map_documents([_invoice(lines)])
        assert [line.description for line in batch.lines] == ["COLOR VEST M"]
        assert batch.lines[0].reference_name == "External Invoice INV/2024/0042"

    def test_category_used_when_name_missing(self):
        batch = InvoiceFeedMapper(AGENCY).map_documents(
            [_invoice([{"product_category": "SOLACE", "qty_delivered": 1, "price_unit": 0}])]
        )
        assert batch.lines[0].description == "SOLACE"

    @pytest.mark.parametrize(
        "line",
        [
            {"product_name": "COLOR VEST M", "qty_delivered": 0, "price_unit": 300},
            {"product_name": "COLOR VEST M", "qty_delivered": 2},
            {"product_name": "", "qty_delivered": 2, "price_unit": 300},
            {"product_name": "COLOR VEST M", "qty_delivered": 1.5, "price_unit": 300},
            "not a line",
        ],
    )
    def test_incomplete_line_rejected(self, line):
        batch = InvoiceFeedMapper(AGENCY).map_documents([_invoice([line])])
        assert batch.lines == []
        [rejected] = batch.rejected
        assert rejected.external_id == "INV/2024/0042:0"
        assert rejected.index == 0

    def test_unreadable_invoice_is_one_rejection(self):
        batch = InvoiceFeedMapper(AGENCY).map_documents(
            [
                _invoice("{not json"),
                {"order_lines": []},
                _invoice([{"product_name": "COLOR VEST M", "qty_delivered": 1, "price_unit": 300}]),
            ]
        )
        assert [r.index for r in batch.rejected] == [0, 1]
        assert len(batch.lines) == 1


class TestLocalDocumentMappers:
    SALE = {
        "id": "sale-1",
        "number": "INV-0012",
        "customer_name": "Shop 4",
        "created_at": "2024-03-02T11:00:00",
        "items": [
            {"product_name": "BRITNY-WHITE XL", "quantity": 2, "unit_price": 750},
            {"product_name": "COLOR VEST M", "quantity": 0},
        ],
    }

    def test_sale_is_stock_out(self):
        batch = SalesInvoiceMapper(AGENCY).map_documents([self.SALE])
        [line] = batch.lines
        assert line.quantity == -2
        assert line.external_id == "sale-1:0"
        assert line.reference_name == "Shop 4"
        assert line.notes == "Local sale - Invoice INV-0012"
        assert [r.external_id for r in batch.rejected] == ["sale-1:1"]

    def test_customer_return_is_stock_in(self):
        document = {"id": "ret-1", "reason": "wrong size", "items": [{"product_name": "COLOR VEST M", "quantity": -1}]}
        [line] = CustomerReturnMapper(AGENCY).map_documents([document]).lines
        assert line.quantity == 1
        assert line.transaction_type == "customer_return"
        assert line.notes == "Customer return - Reason: wrong size"

    def test_company_return_is_stock_out(self):
        document = {"id": "cr-1", "items": [{"product_name": "COLOR VEST M", "quantity": 4}]}
        [line] = CompanyReturnMapper(AGENCY).map_documents([document]).lines
        assert line.quantity == -4
        assert line.reference_name == "Company Return"
        assert line.notes == "Company return - Reason: unspecified"

    def test_each_kind_has_its_own_source(self):
        kinds = ("sale", "customer_return", "company_return")
        sources = {kind: get_mapper(kind, agency_id=AGENCY).source for kind in kinds}
        assert sources == {
            "sale": "local_sale",
            "customer_return": "local_customer_return",
            "company_return": "local_company_return",
        }

    def test_document_without_items(self):
        batch = CustomerReturnMapper(AGENCY).map_documents([{"id": "ret-2"}])
        assert batch.lines == []
        assert batch.rejected[0].external_id == "ret-2"
