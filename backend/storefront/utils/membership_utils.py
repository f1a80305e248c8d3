"""
Membership date helpers

SQLite and MySQL hand DateTime(timezone=True) columns back naive, so every
comparison goes through as_utc().
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are read as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def calculate_membership_expiry(
    days: int,
    current_expiry: Optional[datetime] = None
) -> datetime:
    """
    Expiry for a newly paid membership period.

    A renewal bought while another period is still running is stacked on
    top of it; otherwise the period starts now.

    Args:
        days: Length of the plan period
        current_expiry: Expiry of the running membership, if any

    Returns:
        New expiry (UTC, timezone-aware)
    """
    now = utcnow()
    start = now
    if current_expiry is not None and as_utc(current_expiry) > now:
        start = as_utc(current_expiry)
    return start + timedelta(days=days)


def is_membership_active(expiry_date: Optional[datetime]) -> bool:
    if expiry_date is None:
        return False
    return as_utc(expiry_date) > utcnow()


def days_until_expiry(expiry_date: Optional[datetime]) -> int:
    """Whole days left, 0 once lapsed or when there is no expiry."""
    if expiry_date is None:
        return 0
    return max((as_utc(expiry_date) - utcnow()).days, 0)
