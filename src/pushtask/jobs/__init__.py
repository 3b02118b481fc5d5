"""Job entity and worker base class.

Example:
    from pushtask.jobs import Worker, WorkerRegistry

    registry = WorkerRegistry()

    @registry.register
    class CleanupWorker(Worker):
        async def perform(self, max_age_days: int) -> None:
            ...
"""

from pushtask.jobs.job import DEFAULT_QUEUE, Job
from pushtask.jobs.worker import Worker, WorkerRegistry

__all__ = [
    "DEFAULT_QUEUE",
    "Job",
    "Worker",
    "WorkerRegistry",
]
