"""Deterministic slug identifiers for inventory path segments."""

import re

from stocklink.core.exceptions import ValidationError

SLUG_MAX_LENGTH = 120

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize(name: str | None, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Convert a display name into a slug.

    "Bridge Stone!!" and "  bridge-stone  " both become "bridge-stone".
    Never raises; empty input yields an empty slug.
    """
    if not name:
        return ""
    slug = _NON_ALNUM.sub("-", name.strip().lower())
    return slug.strip("-")[:max_length]


def require_segment(field: str, value: str | None) -> str:
    """Validate a value used as one document path segment."""
    if value is None or not str(value).strip():
        raise ValidationError(field, "must not be empty", value)
    if "/" in str(value):
        raise ValidationError(field, "must not contain '/'", value)
    return str(value)


def require_name(field: str, value: str | None) -> str:
    """Validate a required display name and return it trimmed."""
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty", value)
    return value.strip()
