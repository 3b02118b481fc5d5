"""Unique job lock strategies.

| name            | acquired at           | released at                            |
|-----------------|-----------------------|----------------------------------------|
| no_op           | never                 | never                                  |
| until_executed  | schedule              | end of execution, whatever the outcome |
| until_executing | schedule (two-phase)  | start of execution                     |
| while_executing | start of execution    | end of execution                       |
| until_completed | schedule (two-phase)  | success or permanent failure           |
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pushtask.errors import DeadWorkerError, LockError
from pushtask.middleware.chain import Next
from pushtask.unique_job.conflicts import ConflictStrategy, resolve_conflict_strategy

if TYPE_CHECKING:
    from pushtask.unique_job.job import UniqueJob

logger = logging.getLogger(__name__)


class Lock:
    """Base lock: pass through on both sides."""

    def __init__(self, job: UniqueJob) -> None:
        self.job = job

    @property
    def conflict(self) -> ConflictStrategy:
        worker = self.job.worker
        name = worker.on_conflict or worker.runtime.settings.default_conflict_strategy
        return resolve_conflict_strategy(name)(self.job)

    async def schedule(self, call_next: Next) -> Any:
        return await call_next()

    async def execute(self, call_next: Next) -> Any:
        return await call_next()


class NoOp(Lock):
    """No uniqueness constraint."""


class UntilExecuted(Lock):
    """Held from scheduling until the execution ends."""

    async def schedule(self, call_next: Next) -> Any:
        try:
            await self.job.lock()
        except LockError:
            return await self.conflict.on_schedule(call_next)
        return await call_next()

    async def execute(self, call_next: Next) -> Any:
        try:
            try:
                await self.job.lock()
            except LockError:
                return await self.conflict.on_execute(call_next)
            return await call_next()
        finally:
            await self.job.unlock()


class UntilExecuting(Lock):
    """Held from scheduling until the execution starts."""

    async def schedule(self, call_next: Next) -> Any:
        try:
            return await self.job.lock_for_scheduling(call_next)
        except LockError:
            return await self.conflict.on_schedule(call_next)

    async def execute(self, call_next: Next) -> Any:
        await self.job.unlock()
        return await call_next()


class WhileExecuting(Lock):
    """Held for the duration of the execution only."""

    async def execute(self, call_next: Next) -> Any:
        try:
            await self.job.lock()
        except LockError:
            return await self.conflict.on_execute(call_next)

        try:
            return await call_next()
        finally:
            await self.job.unlock()


class UntilCompleted(Lock):
    """Held from scheduling until the job succeeds or dies.

    A transient failure keeps the lock so that the redelivered job is the
    only one allowed to run.
    """

    async def schedule(self, call_next: Next) -> Any:
        try:
            return await self.job.lock_for_scheduling(call_next)
        except LockError:
            return await self.conflict.on_schedule(call_next)
        except Exception:
            await self.job.unlock()
            raise

    async def execute(self, call_next: Next) -> Any:
        try:
            await self.job.lock()
        except LockError:
            return await self.conflict.on_execute(call_next)

        try:
            result = await call_next()
        except DeadWorkerError:
            await self.job.unlock()
            raise

        await self.job.unlock()
        return result


DEFAULT_LOCK = "no_op"

LOCKS: dict[str, type[Lock]] = {
    "no_op": NoOp,
    "until_executed": UntilExecuted,
    "until_executing": UntilExecuting,
    "while_executing": WhileExecuting,
    "until_completed": UntilCompleted,
}


def resolve_lock(name: str | None) -> type[Lock]:
    """Lock class for a name, falling back to NoOp."""
    lock = LOCKS.get(name or DEFAULT_LOCK)
    if lock is None:
        logger.warning(f"Unknown lock {name!r}, using {DEFAULT_LOCK}")
        return NoOp
    return lock
