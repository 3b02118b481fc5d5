"""Middleware guarding cron instances."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pushtask.cron.job import CronJob
from pushtask.middleware.chain import Next

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker


class CronServerMiddleware:
    """Skip stale cron instances and dispatch the next one."""

    async def __call__(self, worker: Worker, call_next: Next) -> Any:
        return await CronJob(worker).execute(call_next)
