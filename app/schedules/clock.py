"""
SpaceOps Schedules - Schedule Clock

Computes due times for recurring inspection schedules. All arithmetic is on
naive server-local wall-clock datetimes.

Weekdays follow the stored convention 0 = Sunday .. 6 = Saturday.

Known limitation: biweekly is "next weekly occurrence + 7 days" computed from
the trigger time, not from a stored cycle phase. Editing a biweekly schedule
between triggers can shift its fortnightly cadence.
"""
import datetime
from typing import Tuple

from ..facility.models import ScheduleFrequency

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DEFAULT_WEEKDAY = 1  # Monday
MAX_DAY_OF_MONTH = 28


def parse_time_of_day(value) -> Tuple[int, int]:
    """'HH:MM' (or 'HH:MM:SS') -> (hour, minute). Anything malformed is midnight."""
    try:
        parts = str(value).strip().split(":")
        hour, minute = int(parts[0]), int(parts[1])
    except (ValueError, IndexError):
        return 0, 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return 0, 0
    return hour, minute


def _target_weekday(value) -> int:
    if value is None or value == "":
        return DEFAULT_WEEKDAY
    try:
        day = int(value)
    except (TypeError, ValueError):
        return DEFAULT_WEEKDAY
    return day if 0 <= day <= 6 else DEFAULT_WEEKDAY


def _day_of_month(value) -> int:
    if value is None or value == "":
        return 1
    try:
        day = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, min(MAX_DAY_OF_MONTH, day))


def _weekday(dt: datetime.datetime) -> int:
    # Python counts Monday = 0
    return (dt.weekday() + 1) % 7


def _frequency(schedule) -> str:
    freq = getattr(schedule, "frequency", None)
    return str(getattr(freq, "value", freq) or "").lower()


def _at(day: datetime.date, hour: int, minute: int) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time(hour, minute))


def _next_weekly(schedule, now: datetime.datetime, hour: int, minute: int) -> datetime.datetime:
    target = _target_weekday(schedule.day_of_week)
    days_ahead = ((target - _weekday(now) + 7) % 7) or 7
    return _at(now.date() + datetime.timedelta(days=days_ahead), hour, minute)


def _month_after(now: datetime.datetime) -> Tuple[int, int]:
    if now.month == 12:
        return now.year + 1, 1
    return now.year, now.month + 1


def next_due(schedule, now: datetime.datetime = None) -> datetime.datetime:
    """
    Next trigger time after `now` for a schedule that has just fired.

    - daily:    tomorrow at time_of_day
    - weekly:   next day_of_week (default Monday); today never counts
    - biweekly: the weekly result plus 7 days
    - monthly:  day_of_month (1-28, default 1) of next month
    - other:    now + 24h

    The result is always strictly later than `now`. Never raises.
    """
    now = now or datetime.datetime.now()
    hour, minute = parse_time_of_day(schedule.time_of_day)
    freq = _frequency(schedule)

    if freq == ScheduleFrequency.DAILY.value:
        return _at(now.date() + datetime.timedelta(days=1), hour, minute)

    if freq == ScheduleFrequency.WEEKLY.value:
        return _next_weekly(schedule, now, hour, minute)

    if freq == ScheduleFrequency.BIWEEKLY.value:
        return _next_weekly(schedule, now, hour, minute) + datetime.timedelta(days=7)

    if freq == ScheduleFrequency.MONTHLY.value:
        year, month = _month_after(now)
        return datetime.datetime(year, month, _day_of_month(schedule.day_of_month), hour, minute)

    return now + datetime.timedelta(hours=24)


def first_due(schedule, now: datetime.datetime = None) -> datetime.datetime:
    """
    First occurrence for a schedule that was just created, edited or
    re-enabled. Unlike next_due(), a daily or monthly occurrence later today
    still counts. Always strictly later than `now`.
    """
    now = now or datetime.datetime.now()
    hour, minute = parse_time_of_day(schedule.time_of_day)
    freq = _frequency(schedule)

    if freq == ScheduleFrequency.DAILY.value:
        candidate = _at(now.date(), hour, minute)
        if candidate <= now:
            candidate += datetime.timedelta(days=1)
        return candidate

    if freq in (ScheduleFrequency.WEEKLY.value, ScheduleFrequency.BIWEEKLY.value):
        return _next_weekly(schedule, now, hour, minute)

    if freq == ScheduleFrequency.MONTHLY.value:
        day = _day_of_month(schedule.day_of_month)
        candidate = datetime.datetime(now.year, now.month, day, hour, minute)
        if candidate <= now:
            year, month = _month_after(now)
            candidate = datetime.datetime(year, month, day, hour, minute)
        return candidate

    return now + datetime.timedelta(hours=24)


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


def describe_schedule(schedule) -> str:
    """Human-readable recurrence, e.g. 'Weekly on Monday at 09:00'."""
    hour, minute = parse_time_of_day(schedule.time_of_day)
    at = f"{hour:02d}:{minute:02d}"
    freq = _frequency(schedule)
    if freq == ScheduleFrequency.DAILY.value:
        return f"Daily at {at}"
    if freq == ScheduleFrequency.WEEKLY.value:
        return f"Weekly on {WEEKDAY_NAMES[_target_weekday(schedule.day_of_week)]} at {at}"
    if freq == ScheduleFrequency.BIWEEKLY.value:
        return f"Every 2 weeks on {WEEKDAY_NAMES[_target_weekday(schedule.day_of_week)]} at {at}"
    if freq == ScheduleFrequency.MONTHLY.value:
        day = _day_of_month(schedule.day_of_month)
        return f"Monthly on the {day}{_ordinal(day)} at {at}"
    return "Every 24 hours"
