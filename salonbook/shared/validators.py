"""Shared validation utilities"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Union

from .errors import ValidationError


def validate_tenant_id(tenant_id: str) -> str:
    """Reject empty organization ids before touching the store"""
    if not tenant_id or not str(tenant_id).strip():
        raise ValidationError("Organization ID is required")
    return str(tenant_id).strip()


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date.

    Args:
        value: YYYY-MM-DD string or a date

    Returns:
        The parsed date

    Raises:
        ValidationError: If the date is malformed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD") from None


def parse_clock_time(value: Union[str, time]) -> time:
    """
    Parse a clock time in 24h HH:MM format.

    12h values such as "09:30 AM" are accepted as well, since stored
    schedules have used both spellings.
    """
    if isinstance(value, time):
        return value
    raw = (value or "").strip()
    for fmt in ("%H:%M", "%I:%M %p"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time format: {value!r}. Expected HH:MM")


def format_clock_time(value: time) -> str:
    return value.strftime("%H:%M")


def minutes_between(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


def validate_duration(duration: Union[int, timedelta], name: str = "duration") -> timedelta:
    """Accept minutes or a timedelta; reject zero and negative values"""
    if isinstance(duration, timedelta):
        delta = duration
    else:
        try:
            delta = timedelta(minutes=int(duration))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {name}: {duration!r}") from None
    if delta <= timedelta(0):
        raise ValidationError(f"{name.capitalize()} must be positive")
    return delta


def to_naive_utc(value: datetime) -> datetime:
    """Stored date-times are naive UTC; convert aware values accordingly"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    """Current time as naive UTC, matching stored date-times"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
