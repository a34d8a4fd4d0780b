"""
Date helpers for derivation.

Timestamps read back from SQLite are naive; they are stored in UTC, so naive
values are treated as UTC before conversion.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def as_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert a timestamp to tz (naive timestamps are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(tz)


def local_date(value: datetime | None, tz: ZoneInfo) -> date | None:
    """Calendar date of a timestamp in tz."""
    if value is None:
        return None
    return as_local(value, tz).date()


def local_time(value: datetime | None, tz: ZoneInfo) -> time | None:
    """Wall-clock time of a timestamp in tz."""
    if value is None:
        return None
    return as_local(value, tz).time().replace(tzinfo=None)


def resolve_check_in(
    explicit: date | None,
    arrival_at: datetime | None,
    event_date: date | None,
    tz: ZoneInfo,
) -> date | None:
    """
    Check-in date: explicit date, else arrival date, else the day before the event.

    Example:
        >>> resolve_check_in(None, datetime(2026, 3, 14, 10, tzinfo=UTC), None, ZoneInfo("UTC"))
        datetime.date(2026, 3, 14)
    """
    if explicit is not None:
        return explicit
    if arrival_at is not None:
        return local_date(arrival_at, tz)
    if event_date is not None:
        return event_date - timedelta(days=1)
    return None


def resolve_check_out(
    explicit: date | None,
    departure_at: datetime | None,
    event_date: date | None,
    tz: ZoneInfo,
) -> date | None:
    """Check-out date: explicit date, else departure date, else the day after the event."""
    if explicit is not None:
        return explicit
    if departure_at is not None:
        return local_date(departure_at, tz)
    if event_date is not None:
        return event_date + timedelta(days=1)
    return None


def start_time_on(day: date, at: time | None, tz: ZoneInfo) -> datetime:
    """Timezone-aware start time on day at the given wall-clock time (midnight if None)."""
    return datetime.combine(day, at or time(0, 0), tzinfo=tz)


def clamp_hour(hour: int) -> int:
    return max(0, min(23, hour))
