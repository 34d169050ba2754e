"""UTC datetime utilities used across the backend."""
from __future__ import annotations

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Coerce a datetime to UTC, attaching tzinfo when missing (SQLite drops it)."""
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Return an ISO 8601 string in UTC with a trailing 'Z'."""
    coerced = ensure_utc(value)
    if coerced is None:
        return None
    return coerced.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utc_iso(dt: Optional[datetime] = None) -> str:
    """ISO string with 'Z' suffix, defaulting to now."""
    return isoformat_utc(dt if dt else utc_now())  # type: ignore[return-value]


def minutes_between(earlier: Optional[datetime], later: Optional[datetime]) -> Optional[float]:
    """Elapsed minutes from `earlier` to `later`, or None when either side is missing."""
    a = ensure_utc(earlier)
    b = ensure_utc(later)
    if a is None or b is None:
        return None
    return (b - a) / timedelta(minutes=1)
