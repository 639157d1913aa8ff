"""
Bookstore Exception Hierarchy

Domain errors raised by the inventory, cart and order services. Every
exception carries a machine-readable code, a human-readable message and
optional details, and knows the HTTP status it maps to.

Exception Hierarchy:
    BookstoreError
    ├── NotFoundError            404
    ├── ValidationError          400
    ├── ConflictError            409
    │   └── InsufficientStockError
    ├── UnauthorizedError        401
    └── ForbiddenError           403
"""
from typing import Optional, Dict, Any


class BookstoreError(Exception):
    """
    Base exception for all bookstore domain errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
    """

    default_code: str = "BOOKSTORE_ERROR"
    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(BookstoreError):
    """Entity absent, or not owned by the caller."""
    default_code = "RESOURCE_NOT_FOUND"
    status_code = 404
    title = "Resource Not Found"


class ValidationError(BookstoreError):
    """Malformed input or violated field constraint."""
    default_code = "VALIDATION_ERROR"
    status_code = 400
    title = "Validation Failed"

    def __init__(self, message: str, fields: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", {})
        if fields:
            details["fields"] = list(fields)
        super().__init__(message, details=details, **kwargs)


class ConflictError(BookstoreError):
    """Business-rule violation: invalid transition, over-limit, ledger invariant breach."""
    default_code = "BUSINESS_RULE_VIOLATION"
    status_code = 409
    title = "Conflict"


class InsufficientStockError(ConflictError):
    """Not enough available units to satisfy a request."""
    default_code = "INSUFFICIENT_STOCK"
    title = "Insufficient Stock"

    def __init__(
        self,
        message: Optional[str] = None,
        sku_id: Optional[int] = None,
        available: Optional[int] = None,
        requested: Optional[int] = None,
        **kwargs
    ):
        self.sku_id = sku_id
        self.available = available
        self.requested = requested
        details = kwargs.pop("details", {})
        details.update({
            "sku_id": sku_id,
            "available": available,
            "requested": requested,
        })
        if message is None:
            message = (
                f"Insufficient stock for SKU {sku_id}. "
                f"Available: {available}, requested: {requested}"
            )
        super().__init__(message, details=details, **kwargs)


class UnauthorizedError(BookstoreError):
    """Absent or invalid caller identity."""
    default_code = "AUTHENTICATION_FAILED"
    status_code = 401
    title = "Authentication Failed"


class ForbiddenError(BookstoreError):
    """Caller lacks the required role."""
    default_code = "ACCESS_DENIED"
    status_code = 403
    title = "Access Denied"
