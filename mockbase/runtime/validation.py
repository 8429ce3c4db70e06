"""Schema type checks and identifier rules."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

from mockbase.runtime.errors import ValidationError
from mockbase.runtime.models.enums import FieldType

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def check_identifier(value: str, kind: str) -> str:
    """Reject names that are unsafe as a path segment or storage key."""
    if not _IDENTIFIER_RE.fullmatch(value) or value in (".", ".."):
        msg = f"Invalid {kind}: '{value}'"
        raise ValidationError(msg)
    return value


def is_identifier(value: str) -> bool:
    return bool(_IDENTIFIER_RE.fullmatch(value)) and value not in (".", "..")


def _is_date(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        return True
    if not isinstance(value, str) or not value.strip():
        return False
    text = value.strip()
    try:
        datetime.fromisoformat(text)
    except ValueError:
        pass
    else:
        return True
    try:
        parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return False
    return True


def matches_type(value: Any, field_type: FieldType) -> bool:
    if field_type is FieldType.STRING:
        return isinstance(value, str)
    if field_type is FieldType.NUMBER:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if field_type is FieldType.BOOLEAN:
        return isinstance(value, bool)
    return _is_date(value)


def _describe(field_type: FieldType) -> str:
    if field_type is FieldType.DATE:
        return "a valid ISO Date string"
    return str(field_type)


def find_violation(payload: Mapping[str, Any], schema: Mapping[str, FieldType]) -> str | None:
    """Return a message for the first schema field whose present value has the wrong type.

    Fields missing from *payload* or set to ``None`` are not checked.
    """
    for field, field_type in schema.items():
        value = payload.get(field)
        if value is None:
            continue
        if not matches_type(value, field_type):
            return f"Field '{field}' expects {_describe(field_type)}"
    return None


def validate_payload(payload: Mapping[str, Any], schema: Mapping[str, FieldType]) -> None:
    """Raise ``ValidationError`` naming the first mismatched field."""
    violation = find_violation(payload, schema)
    if violation is not None:
        raise ValidationError(f"Validation Error: {violation}")
