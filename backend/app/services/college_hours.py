"""College working-hour arithmetic.

Working hours run from ``college_start_time`` to ``college_end_time`` on the
configured working weekdays (Monday to Saturday by default). Sunday is never a
working day. All values are naive college-local wall-clock datetimes; aware
datetimes are converted to the college timezone first.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.core.config import Settings, get_settings

SUNDAY = 6
ONE_DAY = timedelta(days=1)


def parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def college_now(settings: Settings | None = None) -> datetime:
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.college_timezone)).replace(tzinfo=None, microsecond=0)


def to_college_local(value: datetime, settings: Settings | None = None) -> datetime:
    if value.tzinfo is None:
        return value
    settings = settings or get_settings()
    return value.astimezone(ZoneInfo(settings.college_timezone)).replace(tzinfo=None)


def is_working_day(day: date, settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    weekday = day.weekday()
    return weekday != SUNDAY and weekday in settings.college_working_weekdays


def working_window(day: date, settings: Settings | None = None) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` working window on ``day`` regardless of weekday."""
    settings = settings or get_settings()
    return (
        datetime.combine(day, parse_clock(settings.college_start_time)),
        datetime.combine(day, parse_clock(settings.college_end_time)),
    )


def get_college_seconds_between(start: datetime, end: datetime, settings: Settings | None = None) -> int:
    """Count the seconds of ``[start, end)`` that fall inside working hours."""
    settings = settings or get_settings()
    start = to_college_local(start, settings)
    end = to_college_local(end, settings)
    if start >= end:
        return 0

    total = 0.0
    current = start
    while current < end:
        if is_working_day(current.date(), settings):
            day_start, day_end = working_window(current.date(), settings)
            active_start = max(current, day_start)
            active_end = min(end, day_end)
            if active_start < active_end:
                total += (active_end - active_start).total_seconds()
        current, _ = working_window(current.date() + ONE_DAY, settings)

    return max(0, int(total))


def is_college_working_hour(moment: datetime | None = None, settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    moment = to_college_local(moment, settings) if moment is not None else college_now(settings)
    if not is_working_day(moment.date(), settings):
        return False
    day_start, day_end = working_window(moment.date(), settings)
    return day_start <= moment < day_end


def add_duration_excluding_sundays(start: datetime, duration: timedelta) -> datetime:
    """Add ``duration`` to ``start``, adding another day for every Sunday it spans.

    Sundays are counted from ``start``'s calendar day up to and including the
    end date, which moves forward as Sundays are found.
    """
    end = start + duration
    cursor = datetime.combine(start.date(), time.min)
    while cursor <= end:
        if cursor.weekday() == SUNDAY:
            end += ONE_DAY
        cursor += ONE_DAY
    return end


def correct_sunday_expiry(expires_at: datetime | None) -> datetime | None:
    """Move an access expiry that lands on a Sunday to Monday, same time of day."""
    if expires_at is None or expires_at.weekday() != SUNDAY:
        return expires_at
    return expires_at + ONE_DAY


def access_expiry(start: datetime, duration_hours: float | None) -> datetime | None:
    """``start + duration_hours``; a missing or non-positive duration means permanent access."""
    if not duration_hours or duration_hours <= 0:
        return None
    return start + timedelta(hours=duration_hours)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + ONE_DAY
