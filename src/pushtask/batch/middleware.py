"""Middleware wrapping execution in a batch node."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pushtask.batch.job import BatchJob
from pushtask.middleware.chain import Next

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker


class BatchServerMiddleware:
    """Track the execution outcome in the job's batch tree."""

    async def __call__(self, worker: Worker, call_next: Next) -> Any:
        return await BatchJob.for_worker(worker).execute(call_next)
