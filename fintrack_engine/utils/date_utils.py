"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def trailing_window(days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """(from, to) bounds for a trailing window ending at ``now``"""
    end = now or utcnow()
    return end - timedelta(days=days), end


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); None when blank or invalid.

    Naive values are taken as UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime (SQLite hands back naive values)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_date(value: datetime) -> date:
    return as_utc(value).date()
