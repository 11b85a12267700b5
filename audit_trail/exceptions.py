"""
Audit Trail Exceptions
======================
Error taxonomy for the audit write path.

Only InvalidAuditRecordError is ever visible to callers; everything else is
recovered or logged inside the pipeline.
"""

from typing import Any, Optional


class AuditTrailError(Exception):
    """Base class for audit trail errors."""
    pass


class EncodeError(AuditTrailError):
    """Raised when a payload cannot be represented as canonical JSON text."""

    def __init__(self, message: str, value: Any = None):
        super().__init__(message)
        self.value = value


class DecodeError(AuditTrailError):
    """Raised when serialized details cannot be parsed back."""
    pass


class InvalidAuditRecordError(AuditTrailError, ValueError):
    """Raised when an audit record is constructed without an action."""
    pass


class PersistenceError(AuditTrailError):
    """Raised when the audit store rejects a record."""

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


class DispatchError(AuditTrailError):
    """Raised when an asynchronous audit job cannot be scheduled or fails."""
    pass


class EmergencyFallbackError(AuditTrailError):
    """Raised when the emergency backup channel cannot be written."""
    pass


class RetryExhausted(AuditTrailError):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception
