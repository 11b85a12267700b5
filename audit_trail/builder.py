"""
Audit Record Builder
====================
Creates standardized audit records from raw call arguments.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog

from .codec import encode_details
from .exceptions import EncodeError
from .models import AuditRecord, SERIALIZATION_ERROR_DETAILS, UNKNOWN_ACTION
from .validation import validate_audit_record

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def build_audit_record(
    action: Optional[str],
    entity_type: Optional[str],
    entity_id: Optional[int],
    user_id: Optional[str],
    details: Any = None,
    clock: Clock = utc_now,
) -> AuditRecord:
    """
    Build an audit record. Never raises.

    Args:
        action: Action code (e.g. "CREATE", "LOGIN")
        entity_type: Entity classification
        entity_id: ID of the subject entity, if any
        user_id: Actor ID; blank values become SYSTEM
        details: Contextual payload, encoded via the details codec
        clock: Source of the record timestamp

    Returns:
        A validated record. If details could not be encoded the record holds
        the serialization error marker and has_errors is set.
    """
    has_errors = False
    try:
        encoded = encode_details(details)
    except EncodeError as e:
        logger.error("audit_details_serialization_failed", action=action, error=str(e))
        encoded = SERIALIZATION_ERROR_DETAILS
        has_errors = True

    action = _as_text(action)
    entity_type = _as_text(entity_type)
    user_id = _as_text(user_id)

    if action is None or not action.strip():
        logger.warning("audit_action_missing", entity_type=entity_type)
        action = UNKNOWN_ACTION

    record = AuditRecord(
        action=action,
        timestamp=clock(),
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        details=encoded,
        has_errors=has_errors,
    )
    return validate_audit_record(record)
