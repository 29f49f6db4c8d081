"""Cron helpers shared by the beat schedule and the trigger status endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from celery.schedules import ParseException, crontab

from backend.app.core.config import settings

# Far enough to cover "29 2 *" style expressions across leap years.
_SEARCH_DAYS = 366 * 8


def parse_cron_expression(expression: str) -> crontab:
    """Turn a five-field cron string into a Celery ``crontab``."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Cron expression must have 5 fields: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ParseException, ValueError) as exc:
        raise ValueError(f"Invalid cron expression {expression!r}: {exc}") from exc


def describe_cron_schedule(expression: str) -> str:
    fields = expression.split()
    if (
        len(fields) == 5
        and fields[0].isdigit()
        and fields[1].isdigit()
        and fields[2:] == ["*", "*", "*"]
    ):
        return f"Daily at {int(fields[1]):02d}:{int(fields[0]):02d}"
    return f"Custom: {expression}"


def get_next_execution(
    expression: str,
    now: datetime | None = None,
    tz: str | None = None,
) -> datetime | None:
    """Next minute strictly after *now* that matches *expression*.

    Day-of-month and day-of-week must both match, as Celery beat applies them.
    Returns ``None`` if nothing matches within the search window.
    """
    schedule = parse_cron_expression(expression)
    zone = ZoneInfo(tz or settings.CRON_TIMEZONE)
    current = (now or datetime.now(zone)).astimezone(zone)
    start = current.replace(second=0, microsecond=0)

    hours = sorted(schedule.hour)
    minutes = sorted(schedule.minute)
    for offset in range(_SEARCH_DAYS):
        day = (start + timedelta(days=offset)).date()
        if (
            day.month not in schedule.month_of_year
            or day.day not in schedule.day_of_month
            or day.isoweekday() % 7 not in schedule.day_of_week
        ):
            continue
        for hour in hours:
            for minute in minutes:
                candidate = datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone)
                if candidate > current:
                    return candidate
    return None
