"""Service layer exception classes.

Every failure a caller can observe carries a stable ``code`` plus a
human-readable message. The API layer maps each code to an HTTP status.

Exception Hierarchy:
    InventoryError
    ├── NotFoundError
    ├── InsufficientStockError
    ├── ValidationFailedError
    ├── VersionConflictError
    ├── TransactionTimeoutError        (retryable)
    └── ConsistencyViolationError      (server-side defect)
        ├── NoBatchesAvailableError
        └── BatchShortfallError
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class InventoryError(Exception):
    """Base exception for all service layer errors."""

    code = "inventory_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class NotFoundError(InventoryError):
    """Raised when a tenant-scoped entity cannot be found."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity} not found",
            {"entity": entity, "id": str(identifier)},
        )


class InsufficientStockError(InventoryError):
    """Raised when a deduction or adjustment exceeds available quantity."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, ingredient_id: int, available: Decimal, requested: Decimal):
        self.ingredient_id = ingredient_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock. Available: {available}, Required: {requested}",
            {
                "ingredient_id": ingredient_id,
                "available": str(available),
                "requested": str(requested),
            },
        )


class ValidationFailedError(InventoryError):
    """Raised for domain rule violations the request schemas cannot express."""

    code = "validation_failed"
    status_code = 422


class VersionConflictError(InventoryError):
    """Raised when an update was based on a stale row version."""

    code = "version_conflict"
    status_code = 409


class TransactionTimeoutError(InventoryError):
    """Raised when a ledger transaction exceeded its wait or execution budget.

    Nothing was committed; the caller may retry with backoff.
    """

    code = "transaction_timeout"
    status_code = 503
    retryable = True


class ConsistencyViolationError(InventoryError):
    """Raised when cached aggregates disagree with the batch ledger."""

    code = "consistency_violation"
    status_code = 500

    def public_message(self) -> str:
        return "Inventory ledger is inconsistent; the operation was rolled back"


class NoBatchesAvailableError(ConsistencyViolationError):
    """Aggregate stock is positive but no open batch exists."""

    def __init__(self, ingredient_id: int, total_stock: Decimal):
        self.ingredient_id = ingredient_id
        super().__init__(
            "No available batches for deduction",
            {"ingredient_id": ingredient_id, "total_stock": str(total_stock)},
        )


class BatchShortfallError(ConsistencyViolationError):
    """The FIFO walk exhausted every open batch before satisfying the request."""

    def __init__(self, ingredient_id: int, requested: Decimal, unsatisfied: Decimal):
        self.ingredient_id = ingredient_id
        self.requested = requested
        self.unsatisfied = unsatisfied
        super().__init__(
            f"Insufficient stock in batches. Remaining: {unsatisfied}",
            {
                "ingredient_id": ingredient_id,
                "requested": str(requested),
                "unsatisfied": str(unsatisfied),
            },
        )
