"""Occurrence arithmetic for schedules.

All computation happens in UTC (the reference timeline). A schedule's local
time is shifted by its fixed offset to a UTC time-of-day, and weekday /
day-of-month selection is then applied to UTC dates.

Monthly schedules whose day does not exist in a month (day 30 in February)
are clamped to that month's last day.
"""

import calendar
import logging
from datetime import UTC, date, datetime, timedelta

from chime.scheduling.errors import UnsatisfiableScheduleError
from chime.scheduling.types import Schedule, ScheduleKind

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def reference_minutes(schedule: Schedule) -> int:
    """Minutes past UTC midnight at which the schedule fires."""
    offset_minutes = round(schedule.tz_offset_hours * 60)
    return (schedule.local_time.minutes - offset_minutes) % MINUTES_PER_DAY


def sunday_weekday(moment: datetime | date) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


def _at(day: date, minutes: int) -> datetime:
    return datetime(day.year, day.month, day.day, minutes // 60, minutes % 60, tzinfo=UTC)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def _clamped_day(year: int, month: int, day_of_month: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def _next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def next_fire_time(schedule: Schedule, now: datetime | None = None) -> datetime | None:
    """Get the next UTC instant at which ``schedule`` fires after ``now``.

    Args:
        schedule: The schedule to evaluate.
        now: Reference instant. Naive values are treated as UTC.

    Returns:
        The next fire instant, strictly after ``now``, or None if a one-time
        schedule has already elapsed today.

    Raises:
        UnsatisfiableScheduleError: If a weekly/monthly schedule lacks its day.
    """
    now = _as_utc(now or datetime.now(UTC))
    ref = reference_minutes(schedule)
    today = now.date()

    if schedule.kind is ScheduleKind.ONCE:
        candidate = _at(today, ref)
        if candidate <= now:
            return None
        return candidate

    if schedule.kind is ScheduleKind.DAILY:
        candidate = _at(today, ref)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if schedule.kind is ScheduleKind.WEEKLY:
        if schedule.day_of_week is None:
            raise UnsatisfiableScheduleError("Weekly schedule has no day-of-week")
        days_until = schedule.day_of_week - sunday_weekday(now)
        now_minutes = now.hour * 60 + now.minute
        if days_until < 0 or (days_until == 0 and now_minutes >= ref):
            days_until += 7
        return _at(today + timedelta(days=days_until), ref)

    if schedule.kind is ScheduleKind.MONTHLY:
        if schedule.day_of_month is None:
            raise UnsatisfiableScheduleError("Monthly schedule has no day-of-month")
        year, month = now.year, now.month
        candidate = _at(_clamped_day(year, month, schedule.day_of_month), ref)
        if candidate <= now:
            year, month = _next_month(year, month)
            candidate = _at(_clamped_day(year, month, schedule.day_of_month), ref)
        if candidate.day != schedule.day_of_month:
            logger.warning(
                "monthly_day_clamped",
                extra={
                    "schedule.day_of_month": schedule.day_of_month,
                    "schedule.fire_date": candidate.date().isoformat(),
                },
            )
        return candidate

    raise UnsatisfiableScheduleError(f"Unknown schedule type: {schedule.kind!r}")


def next_delay(schedule: Schedule, now: datetime | None = None) -> timedelta | None:
    """Get the time remaining until the next fire.

    Returns:
        A strictly positive delay, or None if the schedule will not fire
        again (an elapsed one-time schedule).
    """
    now = _as_utc(now or datetime.now(UTC))
    fire_at = next_fire_time(schedule, now)
    if fire_at is None:
        return None
    delay = fire_at - now
    if delay <= timedelta(0):
        return None
    return delay
