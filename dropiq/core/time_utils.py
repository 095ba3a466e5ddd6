from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure the given datetime is timezone-aware in UTC.

    - If dt is None, returns None.
    - If dt is naive, it is taken to already be UTC (SQLite drops tzinfo on read).
    - If dt has a timezone, convert to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339/ISO8601 string with 'Z' suffix for UTC.

    Returns None if dt is None.
    """
    if dt is None:
        return None
    s = ensure_aware_utc(dt).isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_utc(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """Parse an ISO8601 string (supporting trailing 'Z') or pass-through datetime into aware UTC.

    Returns None if value is None or cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware_utc(value)
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return ensure_aware_utc(dt)


def days_since(dt: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed between dt and now, or None when dt is None."""
    if dt is None:
        return None
    now = ensure_aware_utc(now) if now is not None else utc_now()
    return int((now - ensure_aware_utc(dt)).total_seconds() // 86400)


def days_from_now(days: int, now: Optional[datetime] = None) -> datetime:
    base = ensure_aware_utc(now) if now is not None else utc_now()
    return base + timedelta(days=days)


__all__ = [
    "utc_now",
    "ensure_aware_utc",
    "isoformat_utc",
    "parse_utc",
    "days_since",
    "days_from_now",
]
