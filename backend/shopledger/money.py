# Overview: Fixed-point money helpers; all amounts are stored as integer cents.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .validation import ValidationError


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
MAX_AMOUNT = Decimal(MAX_AMOUNT_CENTS).scaleb(-2)


def parse_money(value: Any, field: str) -> int:
    """
    Parse a boundary money value into integer cents.

    Accepts decimal strings ("150", "150.5", "150.50") and JSON numbers.
    Rejects negatives, more than 2 fractional digits and non-finite values.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a decimal amount")
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a decimal amount")

    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a decimal amount")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a decimal amount")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    # Bound before quantize/scale: huge exponents overflow the decimal context
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_AMOUNT_CENTS)}")
    if amount.as_tuple().exponent < -2 and amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"{field} must have at most 2 decimal places")

    return int((amount * 100).to_integral_value())


def parse_optional_money(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return parse_money(value, field)


def format_cents(cents: int | None) -> str | None:
    """Integer cents -> "1234.50". None stays None."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
