"""Conflict strategies applied when a unique job lock is contended.

Each strategy decides what happens to the scheduling or execution call that
lost the lock. Dropping a call means returning without awaiting it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NoReturn

from pushtask.errors import LockError
from pushtask.middleware.chain import Next

if TYPE_CHECKING:
    from pushtask.unique_job.job import UniqueJob

logger = logging.getLogger(__name__)


class ConflictStrategy:
    """Base strategy: drop the call on both sides."""

    def __init__(self, job: UniqueJob) -> None:
        self.job = job

    async def on_schedule(self, call_next: Next) -> Any:
        return None

    async def on_execute(self, call_next: Next) -> Any:
        return None


class Reject(ConflictStrategy):
    """Silently drop the duplicate."""

    async def on_schedule(self, call_next: Next) -> Any:
        self.job.worker.logger.info(f"Rejected duplicate schedule (lock: {self.job.unique_id})")
        return None

    async def on_execute(self, call_next: Next) -> Any:
        self.job.worker.logger.info(f"Rejected duplicate execution (lock: {self.job.unique_id})")
        return None


class Raise(ConflictStrategy):
    """Propagate the conflict as a LockError."""

    def _raise(self) -> NoReturn:
        raise LockError(job_id=self.job.id, unique_id=self.job.unique_id)

    async def on_schedule(self, call_next: Next) -> Any:
        self._raise()

    async def on_execute(self, call_next: Next) -> Any:
        self._raise()


class Reschedule(ConflictStrategy):
    """Schedule anyway, and delay a contended execution."""

    async def on_schedule(self, call_next: Next) -> Any:
        return await call_next()

    async def on_execute(self, call_next: Next) -> Any:
        delay = self.job.worker.runtime.settings.reschedule_delay
        self.job.worker.logger.info(f"Lock {self.job.unique_id} is held, rescheduling in {delay}s")
        await self.job.worker.reenqueue(delay)
        return None


DEFAULT_CONFLICT_STRATEGY = "reject"

CONFLICT_STRATEGIES: dict[str, type[ConflictStrategy]] = {
    "reject": Reject,
    "raise": Raise,
    "reschedule": Reschedule,
}


def resolve_conflict_strategy(name: str | None) -> type[ConflictStrategy]:
    """Strategy class for a name, falling back to Reject."""
    strategy = CONFLICT_STRATEGIES.get(name or DEFAULT_CONFLICT_STRATEGY)
    if strategy is None:
        logger.warning(f"Unknown conflict strategy {name!r}, using {DEFAULT_CONFLICT_STRATEGY}")
        return Reject
    return strategy
