"""
Custom Exceptions for the Entitlements Service

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class EntitlementsError(Exception):
    """Base exception for all entitlements errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(EntitlementsError):
    """Raised when input validation fails."""
    pass


class DatabaseError(EntitlementsError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(DatabaseError):
    """Raised when an operation would violate a stored invariant."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        constraint: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, operation, table, original_error)
        self.constraint = constraint
        if constraint:
            self.details["constraint"] = constraint


class ForbiddenError(EntitlementsError):
    """Raised when the caller lacks privilege or entitlement."""
    pass


class QuotaExceededError(ForbiddenError):
    """Raised when a download is denied by the daily quota."""

    def __init__(self, message: str, remaining: int = 0):
        super().__init__(message, {"remaining": remaining})


class AuthenticationFailedError(EntitlementsError):
    """Raised when a webhook signature is missing or invalid."""
    pass


class TransientError(EntitlementsError):
    """Raised for storage/network hiccups; safe to retry with backoff."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {"retryable": True}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class PaymentProviderError(EntitlementsError):
    """Raised when the payment provider rejects a request."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ConfigurationError(EntitlementsError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
