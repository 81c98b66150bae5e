"""
Source Mapper — Abstract Base Class

Every document source that feeds the ledger (the supplier invoice feed,
local sales invoices, customer and company returns) implements this
interface, so the sync orchestrator stays source-agnostic: it only ever
sees a flat, ordered list of SourceLine items.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()


# ── Source kinds ──────────────────────────────────────────────────────────


class SourceKind(str, Enum):
    """Supported document sources."""

    EXTERNAL_INVOICE = "external_invoice"  # supplier invoice feed (stock in)
    LOCAL_SALE = "sale"  # locally recorded sales invoice (stock out)
    CUSTOMER_RETURN = "customer_return"  # goods back from a customer (stock in)
    COMPANY_RETURN = "company_return"  # goods back to the company (stock out)


class SyncStatus(str, Enum):
    """Result status of a batch."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some lines appended, some failed
    FAILED = "failed"
    NO_DATA = "no_data"


# ── Line containers ───────────────────────────────────────────────────────


@dataclass
class SourceLine:
    """One line item as handed to the sync orchestrator."""

    description: str
    quantity: int
    unit_price: Decimal | int | float | str = 0
    external_id: str | None = None
    transaction_type: str | None = None
    reference_name: str | None = None
    notes: str | None = None
    occurred_at: datetime | None = None
    product_code: str | None = None


@dataclass
class FailedLine:
    index: int
    reason: str
    code: str = "VALIDATION_ERROR"
    external_id: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "external_id": self.external_id,
            "description": self.description,
            "code": self.code,
            "reason": self.reason,
        }


@dataclass
class MappedBatch:
    """Mapper output: usable lines plus lines rejected before ingestion."""

    source: str
    transaction_type: str
    lines: list[SourceLine] = field(default_factory=list)
    rejected: list[FailedLine] = field(default_factory=list)


def absolute_quantity(value: Any) -> int | None:
    """Document quantities come as numbers or numeric strings of either sign."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except ArithmeticError:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return abs(int(number))


# ── Abstract mapper ───────────────────────────────────────────────────────


class SourceMapper(ABC):
    """
    Base class for all document mappers.

    Lifecycle:
        1. __init__(agency_id, config)  — source name / options
        2. map_documents(documents)     — documents -> MappedBatch
    """

    default_source: str = "local_db"

    def __init__(self, agency_id: str, config: dict[str, Any] | None = None):
        self.agency_id = agency_id
        self.config = config or {}
        self.source = self.config.get("source", self.default_source)
        self.logger = logger.bind(mapper=self.kind.value, agency_id=agency_id)

    @property
    @abstractmethod
    def kind(self) -> SourceKind:
        """Return the source kind this mapper handles."""
        ...

    @property
    def transaction_type(self) -> str:
        return self.kind.value

    @property
    def sign(self) -> int:
        return 1 if self.kind in (SourceKind.EXTERNAL_INVOICE, SourceKind.CUSTOMER_RETURN) else -1

    @abstractmethod
    def map_document(self, document: dict[str, Any], batch: MappedBatch, offset: int) -> None:
        """Append one document's lines (or rejects) to ``batch``."""
        ...

    def map_documents(self, documents: list[dict[str, Any]]) -> MappedBatch:
        batch = MappedBatch(source=self.source, transaction_type=self.transaction_type)
        for document in documents:
            self.map_document(document, batch, len(batch.lines) + len(batch.rejected))
        self.logger.info(
            "source.mapped",
            documents=len(documents),
            lines=len(batch.lines),
            rejected=len(batch.rejected),
        )
        return batch


# ── Mapper registry ───────────────────────────────────────────────────────

_MAPPER_REGISTRY: dict[SourceKind, type[SourceMapper]] = {}


def register_mapper(mapper_cls: type[SourceMapper]):
    """Decorator: register a mapper class for its source kind."""
    _MAPPER_REGISTRY[mapper_cls.kind.fget(None)] = mapper_cls  # type: ignore
    return mapper_cls


def get_mapper(
    kind: SourceKind | str,
    agency_id: str,
    config: dict[str, Any] | None = None,
) -> SourceMapper:
    """Factory: return the right mapper instance for the given kind."""
    mapper_cls = _MAPPER_REGISTRY.get(SourceKind(kind))
    if mapper_cls is None:
        raise ValueError(f"No mapper registered for source kind: {SourceKind(kind).value}")
    return mapper_cls(agency_id=agency_id, config=config)
