from __future__ import annotations
"""Reusable validation helpers for request payloads.

Each helper returns the cleaned value (to enable inline usage) or raises
ValidationError (400) naming the offending field.
"""
import re
from typing import Any, Iterable, Optional
from workshop.errors import ValidationError

EMAIL_RE = re.compile(r'^\S+@\S+\.\S+$')


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed."""
    if new_status not in allowed:
        raise ValidationError(f"{field_name} invalid")
    return new_status


def require_fields(data: dict, *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


def clean_str(value: Any, field_name: str, min_len: int = 0, max_len: Optional[int] = None, required: bool = True) -> Optional[str]:
    if value is None or (isinstance(value, str) and value.strip() == ''):
        if required:
            raise ValidationError(f"{field_name} required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    value = value.strip()
    if len(value) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters")
    if max_len is not None and len(value) > max_len:
        raise ValidationError(f"{field_name} must be at most {max_len} characters")
    return value


def clean_int(value: Any, field_name: str, min_value: Optional[int] = None, max_value: Optional[int] = None, required: bool = True) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field_name} required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if min_value is not None and value < min_value:
        raise ValidationError(f"{field_name} must be >= {min_value}")
    if max_value is not None and value > max_value:
        raise ValidationError(f"{field_name} must be <= {max_value}")
    return value


def clean_email(value: Any, field_name: str = 'email') -> str:
    value = clean_str(value, field_name, max_len=255)
    if not EMAIL_RE.match(value):
        raise ValidationError(f"{field_name} invalid")
    return value.lower()


def clean_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field_name} must be a boolean")

__all__ = ['validate_status', 'require_fields', 'clean_str', 'clean_int', 'clean_email', 'clean_bool']
