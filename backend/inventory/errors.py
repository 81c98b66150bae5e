"""
Typed errors for the inventory core.

    InventoryError (base)
    +-- ValidationError          quantity sign / input rejected; a batch continues
    +-- DuplicateIngestionError  idempotency key already in the ledger; reported as a skip
    +-- MatchAmbiguityError      reserved; unresolved matches degrade to "none" instead
    +-- ApprovalPolicyError      positive adjustment cannot reach the ledger
    +-- ApprovalConflictError    request is no longer pending
    +-- NotFoundError            unknown request / product for this agency
    +-- PersistenceError         storage layer failure

Every error carries a machine-readable ``code`` so API and worker callers can
branch on type instead of message text.
"""

from typing import Any


class InventoryError(Exception):
    code = "INVENTORY_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(InventoryError):
    code = "VALIDATION_ERROR"


class DuplicateIngestionError(InventoryError):
    code = "DUPLICATE_INGESTION"

    def __init__(self, external_source: str, external_id: str):
        super().__init__(
            f"{external_source}:{external_id} has already been ingested",
            external_source=external_source,
            external_id=external_id,
        )
        self.external_source = external_source
        self.external_id = external_id


class MatchAmbiguityError(InventoryError):
    code = "MATCH_AMBIGUOUS"


class ApprovalPolicyError(InventoryError):
    code = "APPROVAL_POLICY_VIOLATION"


class ApprovalConflictError(InventoryError):
    code = "APPROVAL_CONFLICT"


class NotFoundError(InventoryError):
    code = "NOT_FOUND"


class PersistenceError(InventoryError):
    code = "PERSISTENCE_ERROR"
