"""Recurring jobs driven by cron schedules."""

from pushtask.cron.expression import CronExpression
from pushtask.cron.job import SCHEDULE_ID_META, TIME_AT_META, CronJob
from pushtask.cron.middleware import CronServerMiddleware
from pushtask.cron.schedule import CronSchedule, ScheduleManager

__all__ = [
    "SCHEDULE_ID_META",
    "TIME_AT_META",
    "CronExpression",
    "CronJob",
    "CronSchedule",
    "CronServerMiddleware",
    "ScheduleManager",
]
