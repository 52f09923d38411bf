"""
Timezone utilities.

Every day/hour boundary is computed in a fixed civil timezone, never the
host's local time, so "the day before class start" means the same thing
wherever the service is deployed. The store keeps timestamps in UTC.
"""

from datetime import datetime, time, timedelta

import pytz


def as_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to the store's native representation (aware UTC).

    Naive datetimes are assumed to already be UTC - that is what SQLite
    hands back for timestamps written by this service.
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def to_civil_time(dt: datetime, tz_name: str) -> datetime:
    """Convert a datetime to the given civil timezone."""
    return as_utc(dt).astimezone(pytz.timezone(tz_name))


def end_of_civil_day(dt: datetime, tz_name: str) -> datetime:
    """Last instant of the civil day containing dt, returned in UTC."""
    tz = pytz.timezone(tz_name)
    local_day = to_civil_time(dt, tz_name).date()
    return tz.localize(datetime.combine(local_day, time.max)).astimezone(pytz.UTC)


def cancellation_window(
    now: datetime, buffer_hours: int, tz_name: str
) -> tuple[datetime, datetime]:
    """
    Window of class start times that are due for the cancellation check.

    From now + 1 day + buffer_hours up to the end of tomorrow's civil day.
    The lower bound can fall after the upper bound late in the evening; the
    caller treats that as an empty window.

    Returns:
        (start, end) as aware UTC datetimes, both inclusive
    """
    now = as_utc(now)
    start = now + timedelta(days=1, hours=buffer_hours)
    end = end_of_civil_day(now + timedelta(days=1), tz_name)
    return start, end


def warning_window(now: datetime) -> tuple[datetime, datetime]:
    """
    Window of class start times that should get the 24h warning.

    Returns:
        (start, end) as aware UTC datetimes, start inclusive, end exclusive
    """
    now = as_utc(now)
    return now + timedelta(hours=23), now + timedelta(hours=25)


def format_datetime_in_timezone(dt: datetime, tz_name: str) -> str:
    """
    Format a datetime for notification text in the civil timezone.

    Returns:
        e.g. "Wednesday, 10 Jan 2024 at 22:00"
    """
    local_dt = to_civil_time(dt, tz_name)
    return local_dt.strftime("%A, %d %b %Y at %H:%M")
