"""
Domain exceptions for StockLink.

Every error carries a machine-readable code, structured details and a
status-code hint for whichever API layer surfaces it.
"""

from typing import Any


class StockLinkError(Exception):
    """Base exception for all StockLink errors."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation Exceptions
class ValidationError(StockLinkError):
    """Input validation failed before any write."""

    status_code = 422

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            f"Validation error for '{field}': {message}",
            code="VALIDATION_ERROR",
            details={
                "field": field,
                "message": message,
                "value": str(value)[:100] if value is not None else None,
            },
        )


# Lookup Exceptions
class NotFoundError(StockLinkError):
    """Referenced branch, inventory node, lot or order does not exist."""

    status_code = 404

    def __init__(self, kind: str, key: str):
        super().__init__(
            f"{kind.capitalize()} not found: {key}",
            code="NOT_FOUND",
            details={"kind": kind, "key": key},
        )


class ConflictError(StockLinkError):
    """Identifier already taken on a strict create path."""

    status_code = 409

    def __init__(self, kind: str, key: str):
        super().__init__(
            f"{kind.capitalize()} already exists: {key}",
            code="CONFLICT",
            details={"kind": kind, "key": key},
        )


# Stock Exceptions
class InsufficientStockError(StockLinkError):
    """Requested quantity exceeds the quantity on hand."""

    status_code = 422

    def __init__(
        self,
        branch_id: str,
        product: str,
        specification: str,
        lot_code: str,
        available: int,
        requested: int,
    ):
        super().__init__(
            f"Insufficient stock for {product} {specification} lot {lot_code} "
            f"at branch {branch_id}: available {available}, requested {requested}",
            code="INSUFFICIENT_STOCK",
            details={
                "branch_id": branch_id,
                "product": product,
                "specification": specification,
                "lot_code": lot_code,
                "available": available,
                "requested": requested,
            },
        )


# Workflow Exceptions
class InvalidTransitionError(StockLinkError):
    """Order status does not permit the requested action."""

    status_code = 422

    def __init__(self, order_id: str, action: str, current_status: str):
        super().__init__(
            f"Cannot {action} order {order_id} in status '{current_status}'",
            code="INVALID_TRANSITION",
            details={
                "order_id": order_id,
                "action": action,
                "current_status": current_status,
            },
        )


# Storage Exceptions
class StorageError(StockLinkError):
    """Base exception for storage operations."""

    status_code = 500


class DatabaseError(StorageError):
    """Database operation failed."""

    def __init__(self, operation: str, error: str):
        super().__init__(
            f"Database error during {operation}: {error}",
            code="DATABASE_ERROR",
            details={"operation": operation, "error": error},
        )


class ConfigurationError(StockLinkError):
    """Configuration error."""

    status_code = 500
