from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from refurb.money import parse_amount
from refurb.services.errors import ValidationError
from refurb.time_utils import parse_iso_date

# Largest value an Integer column holds
INT_MAX = 2**31 - 1


def require_text(payload: dict, key: str, *, max_length: int = 255) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return check_length(key, value.strip(), max_length)


def optional_text(payload: dict, key: str, *, default: str = "", max_length: int | None = None) -> str:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return check_length(key, value.strip(), max_length)


def check_length(key: str, value: str, max_length: int | None) -> str:
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value


def amount_field(payload: dict, key: str, *, default: Any = None) -> Decimal:
    """Money field >= 0. Missing -> default (or required if default is None)."""
    value = payload.get(key, default)
    try:
        return parse_amount(value, key)
    except ValueError as exc:
        raise ValidationError(str(exc))


def int_field(
    payload: dict,
    key: str,
    *,
    default: int | None = None,
    minimum: int | None = None,
    maximum: int | None = INT_MAX,
) -> int:
    """
    Strict integer: rejects bools, floats, decimal strings and non-ASCII digits.

    Bounded by INT_MAX unless the caller passes maximum=None.
    """
    value = payload.get(key, default)
    if value is None:
        raise ValidationError(f"{key} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith("-") else stripped
        if not (digits.isascii() and digits.isdigit()):
            raise ValidationError(f"{key} must be an integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    return value


def date_field(payload: dict, key: str, *, default: date | None = None, required: bool = True) -> date | None:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None or not required:
            return default
        raise ValidationError(f"{key} is required")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO date (YYYY-MM-DD)")


def choice_field(payload: dict, key: str, choices, *, default: str | None = None) -> str:
    value = payload.get(key, default)
    if value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}")
    return value


def bool_field(payload: dict, key: str, *, default: bool = False) -> bool:
    value = payload.get(key, default)
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be true or false")
