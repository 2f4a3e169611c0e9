# Overview: Decimal helpers for euro amounts stored as Numeric(10, 2).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

# Numeric(10, 2) upper bound
MAX_AMOUNT = Decimal("99999999.99")


def coerce_amount(value: Any) -> Decimal:
    """
    Lenient conversion used by read paths (analytics, totals).

    None, booleans, NaN/infinity and anything unparsable become 0.
    Accepts "12,50" as well as "12.50".
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", "."))
        except InvalidOperation:
            return ZERO
    else:
        return ZERO
    if not result.is_finite():
        return ZERO
    return result


def parse_amount(value: Any, field: str) -> Decimal:
    """
    Strict conversion used by write paths: must be a finite number >= 0.

    Raises ValueError with a field-specific message.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} is required")
    if isinstance(value, str) and not value.strip():
        raise ValueError(f"{field} is required")
    if isinstance(value, str):
        try:
            amount = Decimal(value.strip().replace(",", "."))
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    elif isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        raise ValueError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValueError(f"{field} must be a number")
    if amount < 0:
        raise ValueError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT:
        raise ValueError(f"{field} is too large")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_cents(value: Any) -> Decimal:
    """
    coerce_amount rounded half-up to the cent.

    Precision widens past the default 28 digits for very large sums.
    """
    amount = coerce_amount(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_float(value: Any) -> float:
    """JSON rendering: 2-decimal float."""
    return float(round_cents(value))


def format_eur(value: Any) -> str:
    """French-style euro label, e.g. '1 234,50 €'."""
    amount = round_cents(value)
    sign = "-" if amount < 0 else ""
    whole, frac = f"{amount.copy_abs():.2f}".split(".")
    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    return f"{sign}{' '.join(groups)},{frac} €"
