"""
Error types for txnstream.

This module defines every exception raised by the server:
- TxnStreamError: Base exception
- StorageError: Store open/read/write failure
- StoreClosedError: Operation on a store that is not open
- IntegrityError: Stored or streamed bytes are not a valid Transaction
- ValidationError: Required field missing or not text
- MissingContextError: Request handler lacks a required collaborator
- SubscriptionClosedError: Closed subscription used again

Invariants:
    - All errors inherit from TxnStreamError
    - Every error carries a stable code for the API error response
    - Nothing here is retried automatically
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TxnStreamError(Exception):
    """Base exception for all txnstream errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "TXNSTREAM_ERROR"
        self.details = details or {}


class StorageError(TxnStreamError):
    """Storage I/O fault.

    Raised when:
    - The store cannot be opened
    - A read or write against the engine fails
    """

    def __init__(self, message: str, code: str = "STORAGE_ERROR") -> None:
        super().__init__(message, code=code)


class StoreClosedError(StorageError):
    """Operation attempted on a store that is not open."""

    def __init__(self, message: str = "Record store is not open") -> None:
        super().__init__(message, code="STORE_CLOSED")


class IntegrityError(TxnStreamError):
    """Stored or streamed bytes do not decode to a Transaction.

    This is an integrity violation, not a recoverable condition: the
    operation that hit it is aborted rather than skipping the record.
    """

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INTEGRITY_ERROR",
            details={"key": key},
        )
        self.key = key


class ValidationError(TxnStreamError):
    """A required field is missing or has the wrong type."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class MissingContextError(TxnStreamError):
    """A request reached a handler without its shared collaborator.

    This means the application was composed incorrectly; it is never
    expected at runtime.
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Missing '{name}' in application state",
            code="MISSING_CONTEXT",
            details={"name": name},
        )
        self.name = name


class SubscriptionClosedError(TxnStreamError):
    """Subscription has already been closed and cannot be restarted."""

    def __init__(self, message: str = "Subscription is closed") -> None:
        super().__init__(message, code="SUBSCRIPTION_CLOSED")
