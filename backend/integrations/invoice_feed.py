"""
Supplier Invoice Feed Mapper

The external ERP publishes delivered invoices as documents carrying an
``order_lines`` list (sometimes as a JSON string):

    {
      "id": "INV/2024/0042",
      "invoice_date": "2024-03-01T09:30:00",
      "partner_name": "Head Office",
      "order_lines": [
        {"product_name": "[SB42] SOLACE-BLACK 42", "product_category": "SOLACE",
         "qty_delivered": 10, "price_unit": 500.0},
        ...
      ]
    }

Each usable line becomes one stock-in SourceLine whose external id is
``<invoice id>:<line index>``, so a re-delivered invoice is skipped line by
line by the ledger's idempotency key.
"""

import json
from datetime import datetime
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


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return None
    return None


def _order_lines(document: dict[str, Any]) -> list | None:
    lines = document.get("order_lines")
    if isinstance(lines, str):
        try:
            lines = json.loads(lines)
        except json.JSONDecodeError:
            return None
    return lines if isinstance(lines, list) else None


@register_mapper
class InvoiceFeedMapper(SourceMapper):
    """Maps supplier invoice documents to external_invoice lines."""

    default_source = "external_feed"

    @property
    def kind(self) -> SourceKind:
        return SourceKind.EXTERNAL_INVOICE

    def map_document(self, document: dict[str, Any], batch: MappedBatch, offset: int) -> None:
        invoice_id = str(document.get("id") or "").strip()
        lines = _order_lines(document)
        if not invoice_id or lines is None:
            batch.rejected.append(
                FailedLine(
                    index=offset,
                    external_id=invoice_id or None,
                    reason="Invoice has no id or an unreadable order_lines list",
                )
            )
            self.logger.warning("source.invoice.invalid", invoice_id=invoice_id or None)
            return

        occurred_at = _parse_timestamp(document.get("invoice_date"))
        reference = document.get("partner_name") or f"External Invoice {invoice_id}"

        for line_index, line in enumerate(lines):
            external_id = f"{invoice_id}:{line_index}"
            position = len(batch.lines) + len(batch.rejected)
            line = line if isinstance(line, dict) else {}
            description = str(line.get("product_name") or line.get("product_category") or "").strip()
            quantity = absolute_quantity(line.get("qty_delivered"))

            if not description or not quantity or line.get("price_unit") in (None, ""):
                batch.rejected.append(
                    FailedLine(
                        index=position,
                        external_id=external_id,
                        description=description or None,
                        reason="Incomplete line: product_name, qty_delivered and price_unit are required",
                    )
                )
                continue

            batch.lines.append(
                SourceLine(
                    description=description,
                    quantity=quantity * self.sign,
                    unit_price=line.get("price_unit"),
                    external_id=external_id,
                    transaction_type=self.transaction_type,
                    reference_name=reference,
                    notes=f"Imported from external invoice {invoice_id}",
                    occurred_at=occurred_at,
                )
            )
