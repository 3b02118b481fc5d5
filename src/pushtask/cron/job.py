"""Cron instance guard.

Each delivered instance of a schedule dispatches its successor once its
body succeeds. The guard keeps that chain single-stranded:

- an instance that is neither the schedule's last dispatched job nor a
  retry of a started instance is stale and skipped
- a started instance is flagged ``processing`` until its body succeeds, so
  that its redeliveries are recognized as retries
- the successor is only dispatched if the schedule still points at this
  instance, so concurrent deliveries dispatch exactly one successor
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pushtask.cron.schedule import CronSchedule, ScheduleManager
from pushtask.middleware.chain import Next
from pushtask.store.keys import StoreKeys

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker
    from pushtask.store.base import KeyValueStore

logger = logging.getLogger(__name__)

SCHEDULE_ID_META = StoreKeys.cron_meta("schedule_id")
TIME_AT_META = StoreKeys.cron_meta("time_at")

PROCESSING = "processing"
DONE = "done"

_UNSET: Any = object()


class CronJob:
    """Cron facade over a worker."""

    def __init__(self, worker: Worker) -> None:
        self.worker = worker
        self.manager = ScheduleManager(worker.runtime)
        self._cron_schedule: CronSchedule | None = _UNSET

    @property
    def store(self) -> KeyValueStore:
        return self.worker.runtime.store

    def set_schedule(self, schedule_id: str) -> CronJob:
        self.worker.job.set_meta(SCHEDULE_ID_META, str(schedule_id))
        self._cron_schedule = _UNSET
        return self

    @property
    def schedule_id(self) -> str | None:
        return self.worker.job.get_meta(SCHEDULE_ID_META)

    @property
    def job_gid(self) -> str:
        return StoreKeys.cron_job(self.worker.job.id)

    async def cron_schedule(self) -> CronSchedule | None:
        if self._cron_schedule is _UNSET:
            self._cron_schedule = await self.manager.find(self.schedule_id)
        return self._cron_schedule

    async def is_cron_job(self) -> bool:
        return await self.cron_schedule() is not None

    async def state(self) -> str | None:
        return await self.store.get(self.job_gid)

    async def is_retry_instance(self) -> bool:
        """Whether a delivery of this instance is already flagged processing."""
        return await self.is_cron_job() and await self.state() is not None

    def current_time(self) -> datetime:
        """Nominal run time of this instance, defaulting to now."""
        time_at = self.worker.job.get_meta(TIME_AT_META)
        try:
            current = datetime.fromisoformat(str(time_at))
        except ValueError:
            return datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current

    async def next_time(self) -> datetime | None:
        schedule = await self.cron_schedule()
        if schedule is None:
            return None
        return schedule.next_time(self.current_time())

    async def is_expected_instance(self) -> bool:
        if await self.is_retry_instance():
            return True
        schedule = await self.cron_schedule()
        return schedule is not None and schedule.job_id == self.worker.job.id

    async def flag(self, state: str) -> None:
        if state == DONE:
            await self.store.delete(self.job_gid)
        else:
            await self.store.set(self.job_gid, state)

    async def schedule(self, expected_job_id: str | None = None) -> str | None:
        """Dispatch the next instance of the schedule.

        Args:
            expected_job_id: Only dispatch if the schedule still points at
                this job id

        Returns:
            The task id of the successor, or None if nothing was dispatched
        """
        schedule = await self.cron_schedule()
        if schedule is None:
            return None

        async with self.store.lock(schedule.gid):
            current = await self.manager.find(schedule.id)
            if current is None:
                return None
            if expected_job_id is not None and current.job_id != expected_job_id:
                logger.info(
                    f"Successor of {expected_job_id} already dispatched "
                    f"for schedule {current.id}"
                )
                return None

            next_time = current.next_time(self.current_time())
            successor = self.worker.new_instance()
            successor.job.set_meta(TIME_AT_META, next_time.isoformat())

            task_id = await successor.schedule(time_at=next_time)
            if task_id is None:
                logger.warning(f"Next instance of schedule {current.id} was not dispatched")
                return None

            current.task_id = task_id
            current.job_id = successor.job.id
            await self.manager.write(current)
            self._cron_schedule = current

        logger.debug(
            f"Dispatched {successor.job.id} for schedule {current.id} at {next_time.isoformat()}"
        )
        return task_id

    async def execute(self, call_next: Next) -> Any:
        """Run an expected instance and dispatch its successor."""
        if not await self.is_cron_job():
            return await call_next()

        if not await self.is_expected_instance():
            self.worker.logger.info(f"Skipping stale instance of cron schedule {self.schedule_id}")
            return None

        await self.flag(PROCESSING)
        result = await call_next()
        await self.flag(DONE)

        if not await self.is_retry_instance():
            await self.schedule(expected_job_id=self.worker.job.id)

        return result
