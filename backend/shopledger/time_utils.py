"""
Timestamps for the ledger.

Every stored datetime (purchased_at, sold_at, repaired_at, paid_at, ...) is
naive UTC. Conversion happens only at the JSON boundary.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC 'now' used for event dates and soft-delete stamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse client input into naive UTC.

    - None / "" -> None
    - offsets and a trailing "Z" are converted to UTC; naive input is taken as UTC
    - a bare date ("2026-10-19") is midnight, or the last instant of that day
      with end_of_day=True so inclusive "date_to" filters cover the whole day

    Raises ValueError on anything fromisoformat() rejects.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if end_of_day and len(text) == 10:
        return datetime.combine(parsed.date(), time.max)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Naive UTC -> "YYYY-MM-DDTHH:MM:SSZ" (seconds precision)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
