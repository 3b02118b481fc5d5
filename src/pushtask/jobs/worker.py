"""Worker base class and registry.

Application code subclasses Worker and implements ``perform``. A worker
instance wraps one Job and the runtime it was scheduled or delivered
through.

Example:
    registry = WorkerRegistry()

    @registry.register
    class ReportWorker(Worker):
        lock = "until_executed"

        async def perform(self, report_id: str) -> None:
            ...

    runtime = JobRuntime(store, backend, registry=registry)
    await runtime.perform_async(ReportWorker, "report-1")
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, NoReturn, TypeVar

from pushtask.errors import DeadWorkerError, InvalidWorkerError
from pushtask.jobs.job import Job
from pushtask.observability.logging import JobLogger, LogContext

if TYPE_CHECKING:
    from pushtask.batch.job import BatchJob
    from pushtask.runtime import JobRuntime

logger = logging.getLogger(__name__)

W = TypeVar("W", bound="type[Worker]")


class Worker(ABC):
    """Base class for application workers.

    Class options:
        name: Identifier carried in payloads (defaults to the class name)
        queue: Queue to schedule on (defaults to the runtime default queue)
        max_retries: Deliveries allowed before the job is declared dead
        lock: Unique job lock strategy name (e.g. "until_executed")
        on_conflict: Conflict strategy name ("reject", "raise", "reschedule")
        lock_ttl: Lock duration in seconds

    Optional callbacks (sync or async):
        on_error(error), on_dead(error), on_batch_complete(),
        on_child_complete(child), on_child_error(child), on_child_dead(child),
        on_batch_node_complete(child) (any completed or dead descendant)
    """

    name: ClassVar[str] = "Worker"
    queue: ClassVar[str | None] = None
    max_retries: ClassVar[int | None] = None
    lock: ClassVar[str | None] = None
    on_conflict: ClassVar[str | None] = None
    lock_ttl: ClassVar[int | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "name" not in cls.__dict__:
            cls.name = cls.__name__

    def __init__(self, job: Job, runtime: JobRuntime) -> None:
        self.job = job
        self.runtime = runtime
        self.batch: BatchJob | None = None
        self.logger = JobLogger(self)

    @classmethod
    def build(
        cls,
        runtime: JobRuntime,
        *args: Any,
        meta: dict[str, Any] | None = None,
        queue: str | None = None,
    ) -> Worker:
        """Create a worker wrapping a fresh job."""
        job = Job(
            worker=cls.name,
            args=list(args),
            meta=dict(meta or {}),
            queue=queue or cls.queue or runtime.settings.default_queue,
        )
        return cls(job, runtime)

    @abstractmethod
    async def perform(self, *args: Any) -> Any:
        """Run the job body with the job arguments."""

    def unique_args(self, args: list[Any]) -> list[Any]:
        """Arguments used to compute the unique job fingerprint."""
        return args

    def unique_scope(self) -> str | None:
        """Optional scope isolating uniqueness, e.g. the parent batch id."""
        return None

    @property
    def job_max_retries(self) -> int:
        if self.max_retries is not None:
            return self.max_retries
        return self.runtime.settings.max_retries

    def new_instance(self) -> Worker:
        """Worker of the same class with a copy of this job under a new id."""
        return type(self)(self.job.new_instance(), self.runtime)

    async def schedule(
        self,
        interval: float | None = None,
        time_at: datetime | None = None,
    ) -> str | None:
        """Schedule this job through the client middleware chain."""
        return await self.runtime.schedule(self, interval=interval, time_at=time_at)

    async def reenqueue(self, interval: float) -> str | None:
        """Schedule this same job again and skip post-processing of the current run."""
        self.job.reenqueued = True
        return await self.schedule(interval=interval)

    async def execute(self) -> Any:
        """Run the job through the server middleware chain."""
        with LogContext(job_id=self.job.id, worker=self.job.worker, task_id=self.job.task_id):
            self.logger.info("Starting job...")
            try:
                result = await self.runtime.server_middleware.invoke(self, self._perform)
            except DeadWorkerError:
                self.logger.error("Job dead")
                raise
            except Exception:
                self.logger.exception("Job failed")
                raise

            self.logger.info("Job done")
            return result

    async def _perform(self) -> Any:
        if self.job.retries > self.job_max_retries:
            await self._flag_as_dead(DeadWorkerError("Retry budget exhausted"))

        try:
            return await self.perform(*self.job.args)
        except DeadWorkerError as error:
            await self.run_callback("on_dead", error, guarded=False)
            raise
        except Exception as error:
            await self.run_callback("on_error", error)
            if self.job.retries < self.job_max_retries:
                raise
            await self._flag_as_dead(error)

    async def _flag_as_dead(self, error: Exception) -> NoReturn:
        # Terminal callbacks are not guarded: their failures surface
        await self.run_callback("on_dead", error, guarded=False)
        if isinstance(error, DeadWorkerError):
            raise error
        raise DeadWorkerError(str(error)) from error

    async def run_callback(self, name: str, *args: Any, guarded: bool = True) -> Any:
        """Run an optional callback defined on the worker.

        Guarded callbacks log and swallow their failures so that a broken
        callback cannot corrupt coordination state.
        """
        callback = getattr(self, name, None)
        if callback is None or not callable(callback):
            return None

        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception:
            if not guarded:
                raise
            self.logger.exception(f"Error running callback {name}")
            return None


class WorkerRegistry:
    """Closed mapping of worker names to worker classes."""

    def __init__(self) -> None:
        self._workers: dict[str, type[Worker]] = {}

    def register(self, worker_cls: W) -> W:
        """Register a worker class. Usable as a class decorator."""
        existing = self._workers.get(worker_cls.name)
        if existing is not None and existing is not worker_cls:
            logger.warning(f"Replacing registered worker: {worker_cls.name}")
        self._workers[worker_cls.name] = worker_cls
        return worker_cls

    def resolve(self, name: str) -> type[Worker]:
        """Resolve a worker class by name.

        Raises:
            InvalidWorkerError: If no worker is registered under that name
        """
        worker_cls = self._workers.get(name)
        if worker_cls is None:
            raise InvalidWorkerError(name)
        return worker_cls

    def __contains__(self, name: object) -> bool:
        return name in self._workers

    def __iter__(self) -> Iterator[str]:
        return iter(self._workers)

    def __len__(self) -> int:
        return len(self._workers)
