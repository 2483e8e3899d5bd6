"""
Exception hierarchy for ledger operations.

Every error the core raises derives from ``LedgerError``; the API layer maps
each subclass to an HTTP status code.
"""
from typing import Any


class LedgerError(Exception):
    """Base exception for product-payment ledger errors."""

    pass


class ValidationError(LedgerError):
    """Raised when a payload is missing a required field or has a bad value."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class DuplicateKeyError(LedgerError):
    """Raised when a business-unique value is already taken."""

    def __init__(self, field: str, value: Any):
        super().__init__(f"{field} '{value}' already exists")
        self.field = field
        self.value = value


class NotFoundError(LedgerError):
    """Raised when a ledger row or detail record does not exist."""

    pass


class InvalidStateError(LedgerError):
    """Raised when an approval transition is not allowed from the current state."""

    pass


class StorageError(LedgerError):
    """Raised when the relational store fails. The cause is logged, not exposed."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)
