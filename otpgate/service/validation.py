from __future__ import annotations

import re
from typing import Any

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\+?\d{10,15}$")
_CODE_RE = re.compile(r"^\d{6}$")


def is_email(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    # fullmatch: ``$`` alone would accept a trailing newline
    return _EMAIL_RE.fullmatch(value) is not None


def is_phone(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    # \d in str patterns matches any Unicode digit; phone numbers are ASCII only
    return value.isascii() and _PHONE_RE.fullmatch(value) is not None


def is_valid_identifier(value: Any) -> bool:
    return is_email(value) or is_phone(value)


def is_valid_code(value: Any) -> bool:
    """Exactly six ASCII digits."""
    if not isinstance(value, str):
        return False
    return value.isascii() and _CODE_RE.fullmatch(value) is not None


def normalize_identifier(value: str) -> str:
    """Strip whitespace and lower-case emails; phone numbers keep their form."""
    cleaned = value.strip()
    if "@" in cleaned:
        return cleaned.lower()
    return cleaned
