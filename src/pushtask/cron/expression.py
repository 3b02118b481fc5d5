"""Cron expression evaluation.

Supports the standard 5-field format (minute, hour, day of month, month,
day of week) as understood by croniter, evaluated in an IANA time zone so
that daily schedules follow local wall-clock time across DST changes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

DEFAULT_TIME_ZONE = "UTC"


class CronExpression:
    """Parsed cron expression bound to a time zone."""

    def __init__(self, expression: str, time_zone: str | None = None) -> None:
        self.expression = expression.strip()
        self.time_zone = time_zone or DEFAULT_TIME_ZONE

        if len(self.expression.split()) != 5 or not croniter.is_valid(self.expression):
            raise ValueError(f"Invalid cron expression: {expression}")

        try:
            self.tz = ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Invalid time zone: {self.time_zone}") from e

    def _localize(self, dt: datetime) -> datetime:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(self.tz)

    def matches(self, dt: datetime) -> bool:
        """Check if a datetime falls on a matching minute."""
        local = self._localize(dt).replace(second=0, microsecond=0)
        return croniter.match(self.expression, local)

    def next_run(self, after: datetime | None = None) -> datetime:
        """First matching time strictly after ``after`` (defaults to now), in UTC."""
        start = self._localize(after or datetime.now(timezone.utc))
        return croniter(self.expression, start).get_next(datetime).astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"CronExpression({self.expression!r}, time_zone={self.time_zone!r})"
