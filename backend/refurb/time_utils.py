from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """UTC wall clock as a naive datetime; every stored timestamp uses this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> UTC-naive datetime.

    Blank -> None. A bare date means midnight UTC, a naive timestamp is taken
    as UTC, and "Z" / "+HH:MM" offsets are converted. Raises ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def parse_iso_date(value) -> Optional[date]:
    """
    Calendar date from a date, datetime or ISO string.

    A full timestamp string is reduced to its UTC date. Raises ValueError on garbage.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("invalid date")
    text = value.strip()
    if not text:
        return None
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_iso_datetime(text).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z. Naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = _as_utc_naive(dt)
    return dt.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
