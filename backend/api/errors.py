"""
Inventory error -> HTTP status translation used by every router.
"""

from fastapi import HTTPException, status

from inventory.errors import (
    ApprovalConflictError,
    ApprovalPolicyError,
    DuplicateIngestionError,
    InventoryError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

STATUS_BY_ERROR: tuple[tuple[type[InventoryError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ApprovalConflictError, status.HTTP_409_CONFLICT),
    (DuplicateIngestionError, status.HTTP_409_CONFLICT),
    (ApprovalPolicyError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(exc: InventoryError) -> HTTPException:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_dict())
