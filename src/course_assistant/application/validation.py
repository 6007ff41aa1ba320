"""Input checks shared by the application services."""

from __future__ import annotations

import re

from course_assistant.application.exceptions import ValidationError

_OBJECT_ID = re.compile(r"[0-9a-fA-F]{24}")
# Hyphenated 8-4-4-4-12 form only; braces, ``urn:uuid:`` and bare hex are rejected
_UUID = re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}")


def is_valid_identifier(value: str | None) -> bool:
    """Accept 24-char hex object ids (course catalogue ids) and canonical UUIDs."""
    if not value or not isinstance(value, str):
        return False
    return bool(_OBJECT_ID.fullmatch(value) or _UUID.fullmatch(value))


def require_identifier(value: str | None, name: str) -> str:
    if not is_valid_identifier(value):
        raise ValidationError(f"Invalid {name}")
    return value  # type: ignore[return-value]


def require_text(value: str | None, message: str) -> str:
    """Return *value* stripped, or raise ``ValidationError`` if nothing is left."""
    if not value or not value.strip():
        raise ValidationError(message)
    return value.strip()
