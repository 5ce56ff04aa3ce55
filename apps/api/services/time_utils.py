"""
Date/time helpers that depend on the user's timezone.

Sessions are stored in UTC; calendars, streaks and feedback periods are
computed on the user's local days.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Asia/Tokyo"
MAX_STREAK_DAYS = 365


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_valid_timezone(tz_name: str) -> bool:
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_date(moment: datetime, tz_name: Optional[str]) -> date:
    """Calendar day of a UTC instant in the user's timezone."""
    return moment.astimezone(get_zone(tz_name)).date()


def today_in(tz_name: Optional[str]) -> date:
    return local_date(utcnow(), tz_name)


def week_start(day: date) -> date:
    """Monday of the week containing day."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def day_bounds(day: date, tz_name: Optional[str]) -> Tuple[datetime, datetime]:
    """UTC instants [start, end) covering one local day."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def range_bounds(first: date, last: date, tz_name: Optional[str]) -> Tuple[datetime, datetime]:
    """UTC instants [start, end) covering local days first..last inclusive."""
    return day_bounds(first, tz_name)[0], day_bounds(last, tz_name)[1]


def previous_week(today: date) -> Tuple[date, date]:
    """
    Monday..Sunday of the most recent week ending on or before today.

    Run on a Monday this is the week that just finished; run on a Sunday
    it is the week ending that day.
    """
    last_monday = today - timedelta(days=today.isoweekday() % 7 + 6)
    return last_monday, last_monday + timedelta(days=6)


def previous_month(today: date) -> Tuple[date, date]:
    """First..last day of the calendar month before today's."""
    last_day = month_start(today) - timedelta(days=1)
    return last_day.replace(day=1), last_day


def format_duration(total_seconds: int) -> str:
    """
    Compact duration label.

    >>> format_duration(0)
    '0'
    >>> format_duration(5400)
    '1h30m'
    >>> format_duration(7200)
    '2h'
    >>> format_duration(300)
    '5m'
    """
    if total_seconds == 0:
        return "0"

    hours, rest = divmod(int(total_seconds), 3600)
    minutes = rest // 60

    if hours > 0 and minutes > 0:
        return f"{hours}h{minutes}m"
    if hours > 0:
        return f"{hours}h"
    return f"{minutes}m"


def calculate_streak_days(session_days: Iterable[date], today: date) -> int:
    """
    Consecutive local days with at least one session, ending today.

    A day without a session *yet* does not break the streak: when today
    is empty, counting starts from yesterday.
    """
    days = set(session_days)
    if not days:
        return 0

    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days and streak < MAX_STREAK_DAYS:
        streak += 1
        cursor -= timedelta(days=1)
    return streak
