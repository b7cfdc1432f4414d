"""Business-day arithmetic in the reporting timezone.

Every caller passes the reporting timezone explicitly. Nothing in here reads
the host's local time, because an event at 23:30 Shanghai time is 15:30 UTC
and must land on the Shanghai calendar day.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def business_day(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar day of `moment` as seen in the reporting timezone."""
    return ensure_aware(moment).astimezone(tz).date()


def day_window(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Half-open window [start, end) covering `day` in the reporting timezone.

    Returned bounds are UTC instants so they compare directly against
    TIMESTAMPTZ columns. DST days are 23 or 25 hours long.
    """
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def next_daily_run(now: datetime, hour: int, tz: ZoneInfo) -> datetime:
    """
    Next wall-clock occurrence of `hour`:00 in the reporting timezone.

    If that time has already passed today (or is exactly now), the run goes to
    tomorrow. The wall-clock time is rebuilt from the calendar date each time,
    so the result stays at `hour` across DST changes.
    """
    local_now = ensure_aware(now).astimezone(tz)
    candidate = datetime.combine(local_now.date(), time(hour=hour), tzinfo=tz)
    if local_now >= candidate:
        candidate = datetime.combine(
            local_now.date() + timedelta(days=1), time(hour=hour), tzinfo=tz
        )
    return candidate


def week_bounds(day: date) -> tuple[date, date]:
    """Monday..Sunday week containing `day`."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first, next_first - timedelta(days=1)


def year_bounds(day: date) -> tuple[date, date]:
    return date(day.year, 1, 1), date(day.year, 12, 31)
