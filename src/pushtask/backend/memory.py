"""In-memory delivery backend.

Tasks are kept in a list and only run when drained explicitly, which makes
the backend suitable for tests and local scripts:

    backend = InMemoryBackend()
    runtime = JobRuntime(MemoryStore(), backend)
    await runtime.perform_async(ReportWorker, "report-1")
    await backend.drain(runtime)

Drained tasks whose execution fails transiently stay queued with their
retry count bumped, mirroring redelivery by a real push queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from pushtask.backend.base import DeliveryBackend, TaskRequest

if TYPE_CHECKING:
    from pushtask.runtime import ExecutionStatus, JobRuntime

logger = logging.getLogger(__name__)


@dataclass
class MemoryTask:
    """Queued task with its delivery count."""

    id: str
    request: TaskRequest
    retries: int = 0

    @property
    def worker(self) -> str | None:
        return self.request.worker


class InMemoryBackend(DeliveryBackend):
    """List-backed delivery backend drained on demand."""

    def __init__(self) -> None:
        self.tasks: list[MemoryTask] = []

    async def schedule(self, request: TaskRequest) -> str:
        task = MemoryTask(id=str(uuid4()), request=request)
        self.tasks.append(task)
        logger.debug(f"Queued task {task.id} for worker {task.worker}")
        return task.id

    async def delete(self, task_id: str) -> bool:
        before = len(self.tasks)
        self.tasks = [task for task in self.tasks if task.id != task_id]
        return len(self.tasks) < before

    def all(self, worker_name: str | None = None) -> list[MemoryTask]:
        """Queued tasks, optionally restricted to one worker."""
        if worker_name is None:
            return list(self.tasks)
        return [task for task in self.tasks if task.worker == worker_name]

    def find(self, task_id: str) -> MemoryTask | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def clear(self, worker_name: str | None = None) -> None:
        if worker_name is None:
            self.tasks.clear()
        else:
            self.tasks = [task for task in self.tasks if task.worker != worker_name]

    async def run(self, task: MemoryTask, runtime: JobRuntime) -> ExecutionStatus:
        """Deliver one task, keeping it queued if it must be retried."""
        from pushtask.runtime import ExecutionStatus

        status = await runtime.execute_payload(
            task.request.body,
            retries=task.retries,
            task_id=task.id,
        )
        if status is ExecutionStatus.FAILURE:
            task.retries += 1
        else:
            await self.delete(task.id)
        return status

    async def drain(
        self,
        runtime: JobRuntime,
        worker_name: str | None = None,
    ) -> list[ExecutionStatus]:
        """Deliver every task queued at call time, once."""
        statuses = []
        for task in self.all(worker_name):
            # Cancelled by an earlier task of this pass
            if self.find(task.id) is None:
                continue
            statuses.append(await self.run(task, runtime))
        return statuses

    async def drain_all(self, runtime: JobRuntime, max_rounds: int = 100) -> list[ExecutionStatus]:
        """Drain repeatedly until the queue is empty or ``max_rounds`` is hit.

        Tasks scheduled while draining (batch children, cron successors,
        rescheduled jobs) are picked up by the following round.
        """
        statuses: list[ExecutionStatus] = []
        for _ in range(max_rounds):
            if not self.tasks:
                break
            statuses.extend(await self.drain(runtime))
        return statuses
