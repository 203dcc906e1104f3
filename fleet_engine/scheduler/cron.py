# fleet_engine/scheduler/cron.py
"""Frequency aliases and cron matching."""

from datetime import datetime

from croniter import croniter, CroniterBadCronError

from fleet_engine.core.errors import ConfigurationError


EVERY_MINUTE = "* * * * *"
EVERY_TEN_MINUTES = "*/10 * * * *"

VALID_CRON_STRINGS = {
    "every_minute": EVERY_MINUTE,
    "every_five_minutes": "*/5 * * * *",
    "every_ten_minutes": EVERY_TEN_MINUTES,
    "hourly": "0 * * * *",
    "daily": "0 0 * * *",
    "every_night": "0 0 * * *",
    "weekly": "0 0 * * 0",
    "monthly": "0 0 1 * *",
    "yearly": "0 0 1 1 *",
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@weekly": "0 0 * * 0",
    "@monthly": "0 0 1 * *",
    "@yearly": "0 0 1 1 *",
}


def resolve_frequency(frequency: str) -> str:
    """Map a named alias to cron syntax; anything else passes through unchanged."""
    return VALID_CRON_STRINGS.get(frequency, frequency)


def is_due(expression: str, now: datetime) -> bool:
    """
    True when the tick minute matches the cron expression.

    Raises:
        ConfigurationError: If the expression is not valid cron syntax
    """
    try:
        return croniter.match(expression, now.replace(second=0, microsecond=0))
    except (CroniterBadCronError, ValueError, KeyError) as e:
        raise ConfigurationError(f"invalid cron expression {expression!r}: {e}") from e
