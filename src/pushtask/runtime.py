"""Job runtime: the explicit context shared by scheduling and execution.

A runtime bundles the key-value store, the delivery backend, the immutable
settings, the worker registry and the two middleware chains. Every
coordination subsystem reaches its collaborators through the runtime of the
worker it wraps instead of through module-level state.

Example:
    runtime = JobRuntime(RedisStore(Settings(secret="...")), backend)
    install_middleware(runtime)
    runtime.registry.register(ReportWorker)

    await runtime.perform_in(60, ReportWorker, "report-1")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import orjson

from pushtask.backend.base import DeliveryBackend, TaskRequest
from pushtask.config import Settings
from pushtask.errors import DeadWorkerError, InvalidWorkerError
from pushtask.jobs.job import Job
from pushtask.jobs.worker import Worker, WorkerRegistry
from pushtask.middleware.chain import MiddlewareChain
from pushtask.security import verification_token
from pushtask.store.base import KeyValueStore
from pushtask.store.keys import StoreKeys

logger = logging.getLogger(__name__)

ErrorHook = Callable[[Exception, Worker], Awaitable[None] | None]


class ExecutionStatus(str, Enum):
    """Outcome of one execution request."""

    SUCCESS = "success"
    INVALID = "invalid"  # Malformed payload or unknown worker, never retried
    FAILURE = "failure"  # Transient failure, retried by the backend
    DEAD = "dead"  # Permanent failure, never retried

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ExecutionStatus.SUCCESS: 204,
    ExecutionStatus.DEAD: 205,
    ExecutionStatus.INVALID: 404,
    ExecutionStatus.FAILURE: 422,
}


class JobRuntime:
    """Scheduling and execution entry points for workers.

    Settings default to those the store was built with.
    """

    def __init__(
        self,
        store: KeyValueStore,
        backend: DeliveryBackend,
        settings: Settings | None = None,
        registry: WorkerRegistry | None = None,
        on_error: ErrorHook | None = None,
        on_dead: ErrorHook | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.settings = settings or store.settings
        self.registry = registry or WorkerRegistry()
        self.on_error = on_error
        self.on_dead = on_dead
        self.client_middleware = MiddlewareChain()
        self.server_middleware = MiddlewareChain()

    # -- Scheduling --------------------------------------------------------

    def build_request(self, worker: Worker, time_at: datetime | None = None) -> TaskRequest:
        """Wrap a job payload in the HTTP request replayed by the backend."""
        headers = {"Content-Type": "application/json"}
        if self.settings.secret:
            headers["Authorization"] = f"Bearer {verification_token(self.settings)}"

        return TaskRequest(
            url=self.settings.processor_url,
            body=worker.job.to_payload(),
            headers=headers,
            schedule_time=time_at,
            queue=worker.job.queue,
            dispatch_deadline=self.settings.dispatch_deadline,
        )

    async def schedule(
        self,
        worker: Worker,
        interval: float | None = None,
        time_at: datetime | None = None,
    ) -> str | None:
        """Schedule a worker through the client middleware chain.

        Args:
            worker: Worker wrapping the job to schedule
            interval: Delay in seconds before delivery
            time_at: Absolute delivery time (ignored when interval is given)

        Returns:
            The backend task id, or None if a middleware dropped the job
        """
        if interval is not None:
            time_at = datetime.now(timezone.utc) + timedelta(seconds=interval)
        elif time_at is not None and time_at.tzinfo is None:
            time_at = time_at.replace(tzinfo=timezone.utc)
        worker.job.schedule_time = time_at

        async def dispatch() -> str:
            request = self.build_request(worker, time_at)
            request.body = await self.offload_args(request.body)
            task_id = await self.backend.schedule(request)
            logger.debug(f"Scheduled {worker.job.worker} job {worker.job.id} as task {task_id}")
            return task_id

        return await self.client_middleware.invoke(worker, dispatch)

    async def perform_async(
        self,
        worker_cls: type[Worker],
        *args: Any,
        **options: Any,
    ) -> str | None:
        """Schedule a job for immediate delivery."""
        return await worker_cls.build(self, *args, **options).schedule()

    async def perform_in(
        self,
        interval: float,
        worker_cls: type[Worker],
        *args: Any,
        **options: Any,
    ) -> str | None:
        """Schedule a job for delivery after ``interval`` seconds."""
        return await worker_cls.build(self, *args, **options).schedule(interval=interval)

    async def perform_at(
        self,
        time_at: datetime,
        worker_cls: type[Worker],
        *args: Any,
        **options: Any,
    ) -> str | None:
        """Schedule a job for delivery at ``time_at``."""
        return await worker_cls.build(self, *args, **options).schedule(time_at=time_at)

    async def offload_args(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Move job arguments above the storage threshold into the store.

        The returned payload carries ``job_args_payload_id`` in place of
        ``job_args``. Payloads under the threshold are returned unchanged.
        """
        threshold = self.settings.payload_storage_threshold
        if threshold is None:
            return payload

        encoded = orjson.dumps(payload["job_args"])
        if len(encoded) <= threshold * 1024:
            return payload

        job_id = payload["job_id"]
        await self.store.set(StoreKeys.payload(job_id), encoded.decode())
        offloaded = {key: value for key, value in payload.items() if key != "job_args"}
        offloaded["job_args_payload_id"] = job_id
        return offloaded

    # -- Execution ---------------------------------------------------------

    async def restore_args(self, payload: Any) -> Any:
        """Put offloaded job arguments back into a delivered payload.

        Raises:
            InvalidWorkerError: If the stored arguments are gone
        """
        if not isinstance(payload, dict) or "job_args_payload_id" not in payload:
            return payload

        restored = dict(payload)
        payload_id = str(restored.pop("job_args_payload_id"))
        args = await self.store.fetch(StoreKeys.payload(payload_id))
        if args is None:
            logger.warning(f"Stored arguments of job {payload_id} not found")
            raise InvalidWorkerError(restored.get("worker"))
        restored["job_args"] = args
        return restored

    def worker_from_payload(
        self,
        payload: Any,
        retries: int | None = None,
        task_id: str | None = None,
    ) -> Worker:
        """Re-hydrate a worker from a delivered payload.

        Raises:
            InvalidWorkerError: If the payload is malformed or names an
                unregistered worker
        """
        job = Job.from_payload(payload, retries=retries, task_id=task_id)
        worker_cls = self.registry.resolve(job.worker)
        return worker_cls(job, self)

    async def execute_payload(
        self,
        payload: Any,
        retries: int = 0,
        task_id: str | None = None,
    ) -> ExecutionStatus:
        """Execute a delivered payload and classify the outcome."""
        try:
            payload = await self.restore_args(payload)
            worker = self.worker_from_payload(payload, retries=retries, task_id=task_id)
        except InvalidWorkerError as e:
            logger.error(f"Rejecting task {task_id}: {e}")
            return ExecutionStatus.INVALID

        try:
            await worker.execute()
        except DeadWorkerError as e:
            await self._discard_args(worker)
            # Terminal hook failures surface to the caller
            await self._run_hook(self.on_dead, e, worker)
            return ExecutionStatus.DEAD
        except Exception as e:
            try:
                await self._run_hook(self.on_error, e, worker)
            except Exception:
                logger.exception("Error in runtime on_error hook")
            return ExecutionStatus.FAILURE

        if not worker.job.reenqueued:
            await self._discard_args(worker)
        return ExecutionStatus.SUCCESS

    async def _discard_args(self, worker: Worker) -> None:
        if self.settings.payload_storage_threshold is not None:
            await self.store.delete(StoreKeys.payload(worker.job.id))

    async def _run_hook(self, hook: ErrorHook | None, error: Exception, worker: Worker) -> None:
        if hook is None:
            return
        result = hook(error, worker)
        if result is not None:
            await result


def install_middleware(runtime: JobRuntime) -> JobRuntime:
    """Install batch, unique job and cron middleware on a runtime.

    Server side order is batch, cron, unique job. The batch node observes
    every outcome, including executions dropped by a lock conflict. Cron
    schedules the next instance after the unique job lock of the current
    one is released.
    """
    from pushtask.batch.middleware import BatchServerMiddleware
    from pushtask.cron.middleware import CronServerMiddleware
    from pushtask.unique_job.middleware import (
        UniqueJobClientMiddleware,
        UniqueJobServerMiddleware,
    )

    runtime.client_middleware.add(UniqueJobClientMiddleware)

    runtime.server_middleware.add(BatchServerMiddleware)
    runtime.server_middleware.add(UniqueJobServerMiddleware)
    runtime.server_middleware.insert_before(UniqueJobServerMiddleware, CronServerMiddleware)
    return runtime
