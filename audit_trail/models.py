"""
Audit Models
============
Data model for audit records and the capability subject entities expose.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from .exceptions import InvalidAuditRecordError


SYSTEM_USER = "SYSTEM"
UNKNOWN_ACTION = "UNKNOWN_ACTION"
UNKNOWN_EVENT = "UNKNOWN_EVENT"

MAX_ACTION_LENGTH = 50
MAX_ENTITY_TYPE_LENGTH = 100

EMPTY_DETAILS = "{}"
SERIALIZATION_ERROR_DETAILS = '{"error":"Failed to serialize details"}'
INVALID_DETAILS = '{"error":"Invalid JSON in original details"}'
MASK_TEXT = "*****"


class EntityKind:
    """Entity type labels for records that are not tied to a domain entity."""
    USER_ACTION = "UserAction"
    SYSTEM_EVENT = "SystemEvent"


@runtime_checkable
class AuditableEntity(Protocol):
    """Minimal capability a domain entity offers to the audit trail."""

    def identifier(self) -> Optional[int]:
        ...

    def entity_type(self) -> str:
        ...

    def audit_state(self) -> Mapping[str, Any]:
        ...


@dataclass(frozen=True)
class AuditRecord:
    """
    A single append-only audit entry.

    Records are immutable: repairs produce a new record via
    dataclasses.replace, so the timestamp set at build time never changes.
    """
    action: str
    timestamp: datetime
    user_id: str = SYSTEM_USER
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    details: Optional[str] = None
    has_errors: bool = False
    id: Optional[int] = None

    def __post_init__(self):
        if self.action is None or not str(self.action).strip():
            raise InvalidAuditRecordError("Audit record action cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d
