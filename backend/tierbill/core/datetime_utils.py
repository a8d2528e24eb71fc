"""Datetime utilities for consistent timezone handling across the library."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time - standardized across the library.

    Returns:
        Current datetime in UTC timezone.

    Note:
        Billing timestamps (issued_at, received_at, confirmed_at) are always
        written from this value so the record store receives offset-aware ISO strings.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes coming back from the record store."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialize a datetime as an ISO-8601 string in UTC."""
    return ensure_utc(dt).isoformat()


def to_iso_date(value: date | datetime) -> str:
    """Serialize the calendar date part as YYYY-MM-DD."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()
