"""
Source mapper package.

Pluggable mappers that turn source documents into ledger line items:
  - Supplier invoice feed      (stock in)
  - Local sales invoices       (stock out)
  - Customer returns           (stock in)
  - Company returns            (stock out)

Usage:
    from integrations import get_mapper, SourceKind

    mapper = get_mapper(SourceKind.EXTERNAL_INVOICE, agency_id="...")
    batch = mapper.map_documents(invoices)
    report = await ingest_batch(db, agency_id=..., source=batch.source, lines=batch.lines)
"""

from integrations.base import (
    FailedLine,
    MappedBatch,
    SourceKind,
    SourceLine,
    SourceMapper,
    SyncStatus,
    get_mapper,
    register_mapper,
)
from integrations.invoice_feed import InvoiceFeedMapper
from integrations.local_documents import CompanyReturnMapper, CustomerReturnMapper, SalesInvoiceMapper

__all__ = [
    "SourceKind",
    "SourceLine",
    "FailedLine",
    "MappedBatch",
    "SyncStatus",
    "SourceMapper",
    "get_mapper",
    "register_mapper",
    "InvoiceFeedMapper",
    "SalesInvoiceMapper",
    "CustomerReturnMapper",
    "CompanyReturnMapper",
]
