"""
Local Document Mappers — sales invoices, customer returns, company returns.

Local documents share one shape:

    {
      "id": "7f0c...",
      "number": "INV-0012",            # optional display number
      "customer_name": "Shop 4",       # optional
      "reason": "damaged",             # returns only
      "created_at": "2024-03-02T11:00:00",
      "items": [{"product_name": "BRITNY-WHITE XL", "quantity": 2, "unit_price": 750}]
    }

Item quantities are read as absolute values and signed by the document
kind: sales and company returns take stock out, customer returns put it
back. Each kind writes under its own source name, so a return and a sale
that share a document id keep distinct idempotency keys.
"""

from typing import Any

from integrations.base import (
    FailedLine,
    MappedBatch,
    SourceKind,
    SourceLine,
    SourceMapper,
    absolute_quantity,
    register_mapper,
)
from integrations.invoice_feed import _parse_timestamp


class LocalDocumentMapper(SourceMapper):
    def reference_for(self, document: dict[str, Any]) -> str | None:
        return document.get("customer_name")

    def notes_for(self, document: dict[str, Any]) -> str | None:
        return None

    def map_document(self, document: dict[str, Any], batch: MappedBatch, offset: int) -> None:
        document_id = str(document.get("id") or "").strip()
        items = document.get("items")
        if not document_id or not isinstance(items, list):
            batch.rejected.append(
                FailedLine(
                    index=offset,
                    external_id=document_id or None,
                    reason=f"{self.kind.value} document has no id or item list",
                )
            )
            return

        occurred_at = _parse_timestamp(document.get("created_at"))
        for item_index, item in enumerate(items):
            external_id = f"{document_id}:{item_index}"
            position = len(batch.lines) + len(batch.rejected)
            item = item if isinstance(item, dict) else {}
            description = str(item.get("product_name") or "").strip()
            quantity = absolute_quantity(item.get("quantity"))

            if not description or not quantity:
                batch.rejected.append(
                    FailedLine(
                        index=position,
                        external_id=external_id,
                        description=description or None,
                        reason="Item needs a product name and a non-zero quantity",
                    )
                )
                continue

            batch.lines.append(
                SourceLine(
                    description=description,
                    quantity=quantity * self.sign,
                    unit_price=item.get("unit_price") or 0,
                    external_id=external_id,
                    transaction_type=self.transaction_type,
                    reference_name=self.reference_for(document),
                    notes=self.notes_for(document),
                    occurred_at=occurred_at,
                )
            )


@register_mapper
class SalesInvoiceMapper(LocalDocumentMapper):
    default_source = "local_sale"

    @property
    def kind(self) -> SourceKind:
        return SourceKind.LOCAL_SALE

    def notes_for(self, document: dict[str, Any]) -> str | None:
        number = document.get("number") or document.get("id")
        return f"Local sale - Invoice {number}"


@register_mapper
class CustomerReturnMapper(LocalDocumentMapper):
    default_source = "local_customer_return"

    @property
    def kind(self) -> SourceKind:
        return SourceKind.CUSTOMER_RETURN

    def notes_for(self, document: dict[str, Any]) -> str | None:
        return f"Customer return - Reason: {document.get('reason') or 'unspecified'}"


@register_mapper
class CompanyReturnMapper(LocalDocumentMapper):
    default_source = "local_company_return"

    @property
    def kind(self) -> SourceKind:
        return SourceKind.COMPANY_RETURN

    def reference_for(self, document: dict[str, Any]) -> str | None:
        return "Company Return"

    def notes_for(self, document: dict[str, Any]) -> str | None:
        return f"Company return - Reason: {document.get('reason') or 'unspecified'}"
