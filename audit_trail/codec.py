"""
Audit Details Codec
===================
Converts detail payloads into canonical JSON text and back.

Accepted values form a closed set: text, string-keyed mappings, lists,
JSON scalars, and a handful of well-known scalar types rendered as text.
Anything outside that set is an EncodeError, never a silent str() fallback.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Union
from uuid import UUID

from .exceptions import DecodeError, EncodeError
from .models import EMPTY_DETAILS

DetailValue = Union[None, str, int, float, bool, List[Any], Dict[str, Any]]

WRAP_KEY = "value"


def _encode_scalar(value: Any) -> Any:
    """json.dumps hook for the known non-JSON scalar types."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not audit-serializable")


def _dumps(value: Any) -> str:
    try:
        return json.dumps(
            value,
            default=_encode_scalar,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise EncodeError(f"Cannot encode audit details: {e}", value=value) from e


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {token}")


def _loads(text: str) -> Any:
    # NaN and Infinity are not JSON and could never be re-encoded.
    return json.loads(text, parse_constant=_reject_constant)


def _parse_object(text: str) -> bool:
    """True if text is a standard JSON object."""
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return False
    try:
        return isinstance(_loads(stripped), dict)
    except ValueError:
        return False


def encode_details(value: Any) -> str:
    """
    Encode a detail payload as canonical JSON text.

    Args:
        value: None, text, a mapping, or another JSON-compatible value

    Returns:
        JSON text. None becomes "{}"; text that already is a JSON object is
        returned unchanged; any other text is wrapped as {"value": text}.

    Raises:
        EncodeError: If the value is outside the supported set
    """
    if value is None:
        return EMPTY_DETAILS

    if isinstance(value, str):
        if _parse_object(value):
            return value
        return _dumps({WRAP_KEY: value})

    if isinstance(value, Mapping):
        return _dumps(dict(value))

    return _dumps(value)


def decode_details(text: str) -> DetailValue:
    """
    Decode JSON details text.

    Raises:
        DecodeError: If the text is not valid standard JSON
    """
    if text is None:
        raise DecodeError("Cannot decode missing details")
    try:
        return _loads(text)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid JSON in details: {e}") from e


def is_valid_details(text: str) -> bool:
    """Check whether text decodes cleanly."""
    try:
        decode_details(text)
        return True
    except DecodeError:
        return False
