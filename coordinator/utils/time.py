"""Clock helpers shared by services and sweeps."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def deadline_after(start: datetime, hours: Optional[float]) -> Optional[datetime]:
    """Return ``start`` shifted by ``hours``, or None when no timeout applies."""
    if hours is None:
        return None
    return start + timedelta(hours=hours)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to an aware UTC datetime.

    Some backends (SQLite) hand timestamps back without tzinfo even when the
    column is declared timezone-aware; every value written here is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
