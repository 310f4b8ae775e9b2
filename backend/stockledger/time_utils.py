from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def financial_year_for(day: Optional[date] = None) -> str:
    """
    Financial year label for a calendar day.

    Financial years run April 1 - March 31:
    - 2024-04-01 .. 2025-03-31 -> "2024-2025"
    - None -> today's local date (wall clock at call time)
    """
    if day is None:
        day = date.today()
    if day.month >= 4:
        return f"{day.year}-{day.year + 1}"
    return f"{day.year - 1}-{day.year}"
