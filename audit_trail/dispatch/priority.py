"""
Audit Priority Rules
====================
Keyword rules deciding execution mode and fallback eligibility.
"""

from enum import Enum
from typing import Optional

from ..models import AuditRecord


class Priority(str, Enum):
    """Execution mode for an audit record."""
    HIGH = "high"        # Persisted in the caller's task
    NORMAL = "normal"    # Queued for a background worker


HIGH_PRIORITY_EVENT_KEYWORDS = (
    "ERROR",
    "SECURITY",
    "AUTH",
    "AUTHENTICATION",
    "AUTHORIZATION",
    "CRITICAL",
)

CRITICAL_ACTION_KEYWORDS = ("DELETE", "SECURITY", "AUTH")
CRITICAL_ENTITY_KEYWORDS = ("USER", "PERMISSION", "ROLE")


def _contains_any(value: Optional[str], keywords) -> bool:
    if not value:
        return False
    upper = value.upper()
    return any(keyword in upper for keyword in keywords)


def is_high_priority_event(event_type: Optional[str]) -> bool:
    """True if a system event must be persisted synchronously."""
    return _contains_any(event_type, HIGH_PRIORITY_EVENT_KEYWORDS)


def system_event_priority(event_type: Optional[str]) -> Priority:
    return Priority.HIGH if is_high_priority_event(event_type) else Priority.NORMAL


def is_critical_record(record: Optional[AuditRecord]) -> bool:
    """True if a record warrants an emergency backup when the store fails."""
    if record is None:
        return False
    return (
        _contains_any(record.action, CRITICAL_ACTION_KEYWORDS)
        or _contains_any(record.entity_type, CRITICAL_ENTITY_KEYWORDS)
    )
