"""Persisted cron schedules.

A schedule names a worker, its arguments and a cron expression. Only one
instance of a schedule is outstanding at a time: each instance dispatches
its successor when it completes (see CronJob), and the schedule records the
task id and job id of the last dispatched instance.

Example:
    manager = ScheduleManager(runtime)
    await manager.load_from_dict({
        "nightly-report": {"cron": "0 2 * * *", "worker": "ReportWorker"},
    })
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pushtask.cron.expression import CronExpression
from pushtask.store.keys import StoreKeys

if TYPE_CHECKING:
    from pushtask.runtime import JobRuntime
    from pushtask.store.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class CronSchedule:
    """Cron schedule config and last dispatched instance."""

    id: str
    cron: str
    worker: str
    args: list[Any] = field(default_factory=list)
    queue: str | None = None
    time_zone: str | None = None
    task_id: str | None = None
    job_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CronSchedule:
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @property
    def gid(self) -> str:
        return StoreKeys.cron_schedule(self.id)

    @property
    def expression(self) -> CronExpression:
        return CronExpression(self.cron, self.time_zone)

    def to_config(self) -> dict[str, Any]:
        """Fields whose change requires re-dispatching the schedule."""
        return {
            "id": self.id,
            "cron": self.cron,
            "worker": self.worker,
            "args": self.args,
            "queue": self.queue,
            "time_zone": self.time_zone,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def is_valid(self) -> bool:
        if not self.id or not self.worker or not self.cron:
            return False
        try:
            CronExpression(self.cron, self.time_zone)
        except ValueError:
            return False
        return True

    def next_time(self, after: datetime | None = None) -> datetime:
        return self.expression.next_run(after)


class ScheduleManager:
    """Create, update and remove cron schedules."""

    def __init__(self, runtime: JobRuntime) -> None:
        self.runtime = runtime

    @property
    def store(self) -> KeyValueStore:
        return self.runtime.store

    async def find(self, schedule_id: str | None) -> CronSchedule | None:
        if not schedule_id:
            return None

        data = await self.store.fetch(StoreKeys.cron_schedule(schedule_id))
        if not isinstance(data, dict):
            return None
        return CronSchedule.from_dict(data)

    async def all(self) -> list[CronSchedule]:
        """Every persisted schedule, by id."""
        schedule_ids = await self.store.smembers(StoreKeys.CRON_SCHEDULE_INDEX)
        schedules = []
        for schedule_id in sorted(schedule_ids):
            schedule = await self.find(schedule_id)
            if schedule is not None:
                schedules.append(schedule)
        return schedules

    async def write(self, schedule: CronSchedule) -> None:
        """Persist a schedule as is."""
        await self.store.write(schedule.gid, schedule.to_dict())
        await self.store.sadd(StoreKeys.CRON_SCHEDULE_INDEX, schedule.id)

    def is_valid(self, schedule: CronSchedule) -> bool:
        if not schedule.is_valid():
            logger.warning(f"Invalid cron schedule: {schedule.id}")
            return False
        if schedule.worker not in self.runtime.registry:
            logger.warning(
                f"Cron schedule {schedule.id} names an unknown worker: {schedule.worker}"
            )
            return False
        return True

    async def save(self, schedule: CronSchedule, update_task: bool = True) -> bool:
        """Persist a schedule.

        When the config changed, the outstanding instance is cancelled and a
        first instance of the new config is dispatched.

        Returns:
            False if the schedule is invalid or unchanged
        """
        if not self.is_valid(schedule):
            return False

        async with self.store.lock(schedule.gid):
            stored = await self.find(schedule.id)
            if stored is not None and stored.to_dict() == schedule.to_dict():
                return False

            config_changed = stored is None or stored.to_config() != schedule.to_config()
            await self.write(schedule)

        if not (update_task and config_changed):
            return True

        if schedule.task_id:
            await self.runtime.backend.delete(schedule.task_id)

        await self.dispatch(schedule)
        return True

    async def dispatch(self, schedule: CronSchedule) -> str | None:
        """Dispatch the first instance of a schedule."""
        from pushtask.cron.job import CronJob

        worker_cls = self.runtime.registry.resolve(schedule.worker)
        worker = worker_cls.build(self.runtime, *schedule.args, queue=schedule.queue)
        return await CronJob(worker).set_schedule(schedule.id).schedule()

    async def create(self, **opts: Any) -> CronSchedule:
        """Create a schedule, merging with the stored one if it exists."""
        stored = await self.find(opts.get("id"))
        config = {**(stored.to_dict() if stored else {}), **opts}
        schedule = CronSchedule.from_dict(config)
        await self.save(schedule)
        return await self.find(schedule.id) or schedule

    async def update(self, schedule_id: str, **opts: Any) -> CronSchedule | None:
        schedule = await self.find(schedule_id)
        if schedule is None:
            return None

        schedule = replace(schedule, **opts)
        await self.save(schedule)
        return await self.find(schedule.id) or schedule

    async def delete(self, schedule_id: str) -> bool:
        """Remove a schedule and cancel its outstanding instance."""
        schedule = await self.find(schedule_id)
        if schedule is None:
            return False

        if schedule.task_id:
            await self.runtime.backend.delete(schedule.task_id)

        await self.store.delete(schedule.gid)
        await self.store.srem(StoreKeys.CRON_SCHEDULE_INDEX, schedule.id)
        return True

    async def load_from_dict(self, mapping: dict[str, dict[str, Any]]) -> list[CronSchedule]:
        """Sync schedules with a config mapping of schedule id -> options.

        Listed schedules are created or updated, unlisted ones deleted.
        """
        schedules = [
            await self.create(**{**options, "id": schedule_id})
            for schedule_id, options in mapping.items()
        ]

        for schedule in await self.all():
            if schedule.id not in mapping:
                await self.delete(schedule.id)

        return schedules
