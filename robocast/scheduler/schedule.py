"""Schedule calculation utilities.

Validates schedules and computes next run times, using croniter for cron
expressions. Cron expressions are always evaluated in UTC.
"""
from datetime import datetime, timezone

from croniter import croniter

from .errors import InvalidScheduleError
from .types import (
    Schedule,
    OneTimeSchedule,
    RecurringSchedule,
)


def utcnow() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def validate_cron_expression(expression: str) -> bool:
    """Validate a 5-part cron expression (min hour day month weekday).

    Args:
        expression: Cron expression to validate

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(expression, str):
        return False
    parts = expression.split()
    if len(parts) != 5:
        return False
    return croniter.is_valid(expression)


def next_cron_tick(expression: str, after: datetime) -> datetime:
    """Return the first cron tick strictly after `after`, in UTC."""
    base = after.astimezone(timezone.utc)
    return croniter(expression, base).get_next(datetime)


def compute_next_run_at(
    schedule: Schedule,
    current: datetime | None = None,
) -> datetime | None:
    """Compute the next run time.

    Args:
        schedule: The schedule configuration
        current: Current time (defaults to now)

    Returns:
        Next run time, or None if a one-time schedule has already passed
    """
    if current is None:
        current = utcnow()

    if isinstance(schedule, OneTimeSchedule):
        if schedule.at > current:
            return schedule.at
        return None
    elif isinstance(schedule, RecurringSchedule):
        if not validate_cron_expression(schedule.expression):
            return None
        return next_cron_tick(schedule.expression, current)
    return None


def validate_schedule(schedule: Schedule, current: datetime | None = None) -> None:
    """Check a schedule submitted for a new or rescheduled job.

    Raises:
        InvalidScheduleError: the cron expression is malformed, or the
            one-time timestamp is missing, naive or not in the future.
    """
    if current is None:
        current = utcnow()

    if isinstance(schedule, RecurringSchedule):
        if not validate_cron_expression(schedule.expression):
            raise InvalidScheduleError(
                f"Invalid cron expression: {schedule.expression!r} "
                "(expected 5 fields: minute hour day month weekday)"
            )
    elif isinstance(schedule, OneTimeSchedule):
        if schedule.at is None or schedule.at.tzinfo is None:
            raise InvalidScheduleError("One-time schedule needs a timezone-aware timestamp")
        if schedule.at <= current:
            raise InvalidScheduleError(
                f"Scheduled time {schedule.at.isoformat()} must be in the future"
            )
    else:
        raise InvalidScheduleError(f"Unknown schedule type: {type(schedule).__name__}")


def cron_to_human(expression: str) -> str:
    """Convert cron expression to a short human-readable description.

    Args:
        expression: Cron expression

    Returns:
        Human-readable description (UTC)
    """
    parts = expression.split()
    if len(parts) != 5:
        return f"Cron: {expression}"

    minute, hour, day, month, weekday = parts

    if expression == "* * * * *":
        return "Every minute"

    # Interval patterns
    if minute.startswith("*/") and hour == "*" and day == "*" and month == "*" and weekday == "*":
        return f"Every {minute[2:]} minutes"

    if hour.startswith("*/") and minute == "0" and day == "*" and month == "*" and weekday == "*":
        return f"Every {hour[2:]} hours"

    if not (minute.isdigit() and hour.isdigit()):
        return f"Cron: {expression}"

    at = f"{hour.zfill(2)}:{minute.zfill(2)} UTC"
    if day == "*" and month == "*":
        if weekday == "*":
            return f"Daily at {at}"
        weekday_names = {
            "0": "Sunday", "1": "Monday", "2": "Tuesday", "3": "Wednesday",
            "4": "Thursday", "5": "Friday", "6": "Saturday", "7": "Sunday",
            "1-5": "weekday", "0,6": "weekend day", "6,0": "weekend day",
        }
        wd = weekday_names.get(weekday, weekday)
        return f"Every {wd} at {at}"

    return f"Cron: {expression}"


def schedule_to_human(schedule: Schedule) -> str:
    """Convert schedule to human-readable description."""
    if isinstance(schedule, OneTimeSchedule):
        return f"Once at {schedule.at.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC"
    elif isinstance(schedule, RecurringSchedule):
        return cron_to_human(schedule.expression)
    return "Unknown schedule"
