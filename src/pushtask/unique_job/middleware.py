"""Middleware applying the worker's lock strategy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pushtask.middleware.chain import Next
from pushtask.unique_job.job import UniqueJob

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker


class UniqueJobClientMiddleware:
    """Lock on schedule according to the worker's lock strategy."""

    async def __call__(self, worker: Worker, call_next: Next) -> Any:
        return await UniqueJob(worker).lock_instance.schedule(call_next)


class UniqueJobServerMiddleware:
    """Lock on execution according to the worker's lock strategy."""

    async def __call__(self, worker: Worker, call_next: Next) -> Any:
        return await UniqueJob(worker).lock_instance.execute(call_next)
