from __future__ import annotations

from datetime import datetime, timezone

from apscheduler.triggers.cron import CronTrigger

DEFAULT_SCHEDULE = "daily"

SCHEDULE_ALIASES = {
    "hourly": "0 * * * *",
    "daily": "0 0 * * *",
    "weekly": "0 0 * * sun",
}


def cron_expression(schedule: str) -> str:
    return SCHEDULE_ALIASES.get(schedule.strip().lower(), schedule.strip())


def build_trigger(schedule: str) -> CronTrigger:
    """Raises ValueError for anything that is neither an alias nor a 5-field crontab."""
    expression = cron_expression(schedule)
    if len(expression.split()) != 5:
        raise ValueError(f"schedule '{schedule}' must be hourly, daily, weekly or a 5-field cron expression")
    return CronTrigger.from_crontab(expression, timezone=timezone.utc)


def next_fire_time(schedule: str, now: datetime | None = None) -> datetime | None:
    now = now or datetime.now(timezone.utc)
    return build_trigger(schedule).get_next_fire_time(None, now)
