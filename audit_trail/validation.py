"""
Audit Record Validation
=======================
Repairs constraint violations instead of rejecting the write.
"""

from dataclasses import replace

import structlog

from .codec import is_valid_details
from .exceptions import InvalidAuditRecordError
from .models import (
    AuditRecord,
    INVALID_DETAILS,
    MAX_ACTION_LENGTH,
    MAX_ENTITY_TYPE_LENGTH,
    SYSTEM_USER,
)

logger = structlog.get_logger(__name__)


def validate_audit_record(record: AuditRecord) -> AuditRecord:
    """
    Validate an audit record, repairing what can be repaired.

    Args:
        record: Record to validate

    Returns:
        The record itself if nothing needed repair, otherwise a repaired copy

    Raises:
        InvalidAuditRecordError: If the record has no action
    """
    if record.action is None or not record.action.strip():
        raise InvalidAuditRecordError("Audit record action cannot be empty")

    changes = {}

    if record.user_id is None or not record.user_id.strip():
        logger.warning("audit_user_defaulted", action=record.action)
        changes["user_id"] = SYSTEM_USER

    if len(record.action) > MAX_ACTION_LENGTH:
        logger.warning("audit_action_truncated", length=len(record.action))
        changes["action"] = record.action[:MAX_ACTION_LENGTH]

    if record.entity_type is not None and len(record.entity_type) > MAX_ENTITY_TYPE_LENGTH:
        logger.warning("audit_entity_type_truncated", length=len(record.entity_type))
        changes["entity_type"] = record.entity_type[:MAX_ENTITY_TYPE_LENGTH]

    if record.details is not None and not is_valid_details(record.details):
        logger.warning("audit_details_invalid", action=record.action)
        changes["details"] = INVALID_DETAILS
        changes["has_errors"] = True

    if not changes:
        return record
    return replace(record, **changes)
