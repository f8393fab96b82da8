from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from shopledger.time_utils import parse_iso_datetime


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate IMEI, item already sold)."""


class NotFoundError(ValueError):
    """404-level missing or soft-deleted record."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for ids and page numbers.

    Rejects booleans, floats, decimals and scientific notation so that
    "12.5" or "1e3" never silently become an id.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field)


def optional_str(value: Any, field: str, max_length: int | None = None) -> str | None:
    """Trimmed string or None; blank strings normalize to None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if max_length is not None and len(stripped) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return stripped


def require_str(value: Any, field: str, max_length: int | None = None) -> str:
    result = optional_str(value, field, max_length)
    if result is None:
        raise ValidationError(f"{field} is required")
    return result


def require_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    """Closed-set enum check; anything outside the set fails before reaching a service."""
    allowed = list(choices)
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(f"{field} must be one of {', '.join(allowed)}")
    return value


def optional_choice(value: Any, field: str, choices: Iterable[str]) -> str | None:
    if value is None:
        return None
    return require_choice(value, field, choices)


def optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def optional_period_end(value: Any, field: str) -> datetime | None:
    """Like optional_datetime, but a bare date means the end of that day."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
    try:
        return parse_iso_datetime(value, end_of_day=True)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")


def require_dict(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object")
    return value


def require_list(value: Any, field: str, *, allow_empty: bool = False) -> list:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    if not value and not allow_empty:
        raise ValidationError(f"{field} must contain at least one entry")
    return value
