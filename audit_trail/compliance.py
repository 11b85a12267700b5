"""
Compliance Masking
==================
Redacts sensitive values from serialized audit details.

Masking only runs when the serialized details mention "password"; the key
walk then masks any key containing one of SENSITIVE_KEY_FRAGMENTS.
"""

from dataclasses import replace
from typing import Any

import structlog

from .codec import decode_details, encode_details
from .exceptions import DecodeError, EncodeError
from .models import AuditRecord, MASK_TEXT

logger = structlog.get_logger(__name__)

MASKING_TRIGGER = "password"
SENSITIVE_KEY_FRAGMENTS = ("password", "secret", "token", "key")


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def mask_sensitive_values(value: Any) -> Any:
    """
    Return a copy of a decoded details value with sensitive keys masked.

    Mappings are walked at any depth, including mappings inside lists.
    The input is never modified.
    """
    if isinstance(value, dict):
        masked = {}
        for key, item in value.items():
            if is_sensitive_key(str(key)):
                masked[key] = MASK_TEXT
            else:
                masked[key] = mask_sensitive_values(item)
        return masked
    if isinstance(value, list):
        return [mask_sensitive_values(item) for item in value]
    return value


def needs_masking(details: str) -> bool:
    return details is not None and MASKING_TRIGGER in details.lower()


def apply_compliance_policy(record: AuditRecord) -> AuditRecord:
    """
    Apply sensitive-data masking to a record's details.

    If the details cannot be decoded or re-encoded the record is returned
    unmasked and a warning is logged.
    """
    if not needs_masking(record.details):
        return record

    try:
        masked = mask_sensitive_values(decode_details(record.details))
        return replace(record, details=encode_details(masked))
    except (DecodeError, EncodeError) as e:
        logger.warning(
            "audit_masking_skipped",
            action=record.action,
            error=str(e),
        )
        return record
