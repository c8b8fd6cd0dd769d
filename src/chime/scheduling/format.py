"""Human-readable rendering of schedules and delays."""

from datetime import UTC, datetime

from chime.scheduling.types import DAY_NAMES, Schedule, ScheduleKind


def format_offset(hours: float) -> str:
    """Render a UTC offset: ``UTC``, ``UTC+6``, ``UTC-5``, ``UTC+5.5``."""
    if hours == 0:
        return "UTC"
    return f"UTC{hours:+g}"


def describe_schedule(schedule: Schedule) -> str:
    tz = format_offset(schedule.tz_offset_hours)
    time = str(schedule.local_time)
    match schedule.kind:
        case ScheduleKind.ONCE:
            return f"Once at {time} {tz}"
        case ScheduleKind.DAILY:
            return f"Every day at {time} {tz}"
        case ScheduleKind.WEEKLY:
            day = (
                DAY_NAMES[schedule.day_of_week]
                if schedule.day_of_week is not None
                else "?"
            )
            return f"Every {day} at {time} {tz}"
        case ScheduleKind.MONTHLY:
            return f"Monthly on day {schedule.day_of_month} at {time} {tz}"
    return "Unknown schedule type"


def format_delay(seconds: float) -> str:
    """Format delay in human-readable form."""
    minutes = seconds / 60
    if minutes < 1:
        return "under a minute"
    if minutes < 60:
        return f"~{int(minutes)} minutes"
    hours = minutes / 60
    if hours < 24:
        return f"~{hours:.1f} hours"
    days = hours / 24
    return f"~{days:.1f} days"


def format_countdown(next_fire: datetime | None, now: datetime | None = None) -> str:
    """Format a countdown string for the next fire time."""
    if next_fire is None:
        return "-"

    now = now or datetime.now(UTC)
    if next_fire <= now:
        return "now"

    total_seconds = int((next_fire - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours < 24:
        if minutes:
            return f"in {hours}h {minutes}m"
        return f"in {hours}h"

    days = hours // 24
    hours = hours % 24
    if hours:
        return f"in {days}d {hours}h"
    return f"in {days}d"
