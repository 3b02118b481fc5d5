"""Fingerprint lock held on behalf of one job.

The fingerprint is a SHA-256 digest over the worker class, the arguments
relevant to uniqueness and an optional scope. The lock record stores the
owning job id so that only the owner ever refreshes or releases it.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import orjson

from pushtask.errors import LockError
from pushtask.store.keys import StoreKeys
from pushtask.unique_job.locks import Lock, resolve_lock

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker
    from pushtask.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class UniqueJob:
    """Unique job facade over a worker."""

    def __init__(self, worker: Worker) -> None:
        self.worker = worker
        self._unique_id: str | None = None

    @property
    def id(self) -> str:
        return self.worker.job.id

    @property
    def store(self) -> KeyValueStore:
        return self.worker.runtime.store

    @property
    def fingerprint(self) -> dict[str, Any]:
        return {
            "class": self.worker.job.worker,
            "unique_args": self.worker.unique_args(self.worker.job.args),
            "unique_scope": self.worker.unique_scope(),
        }

    @property
    def unique_id(self) -> str:
        if self._unique_id is None:
            digest = orjson.dumps(self.fingerprint, option=orjson.OPT_SORT_KEYS)
            self._unique_id = hashlib.sha256(digest).hexdigest()
        return self._unique_id

    @property
    def lock_instance(self) -> Lock:
        return resolve_lock(self.worker.lock)(self)

    @property
    def unique_gid(self) -> str:
        return StoreKeys.unique_job(self.unique_id)

    @property
    def lock_duration(self) -> int:
        if self.worker.lock_ttl is not None:
            return self.worker.lock_ttl
        return self.worker.runtime.settings.lock_ttl

    def lock_ttl(self, now: datetime | None = None) -> float:
        """Lock duration covering the gap until the job is delivered.

        Never shorter than the configured duration, and extended by the
        delay until the scheduled time when the job is scheduled ahead.
        """
        now = now or datetime.now(timezone.utc)
        duration = self.lock_duration
        scheduled_at = self.worker.job.schedule_time or now
        until = max(scheduled_at, now) - now
        return max(duration, until.total_seconds() + duration)

    async def lock(self, ttl: float | None = None) -> None:
        """Acquire the lock, or refresh it if this job already owns it.

        Raises:
            LockError: If the lock is owned by another job
        """
        ttl = ttl if ttl is not None else self.lock_ttl()

        async with self.store.lock(self.unique_gid):
            locked_id = await self.store.get(self.unique_gid)
            if locked_id is not None and locked_id != self.id:
                raise LockError(job_id=locked_id, unique_id=self.unique_id)

            await self.store.set(self.unique_gid, self.id, ex=ttl)

    async def unlock(self) -> None:
        """Release the lock if this job owns it."""
        async with self.store.lock(self.unique_gid):
            if await self.store.delete_if(self.unique_gid, self.id):
                logger.debug(f"Released lock {self.unique_id} held by {self.id}")

    async def lock_for_scheduling(self, call_next: Callable[[], Awaitable[Any]]) -> Any:
        """Two-phase lock around a scheduling call.

        A short provisional lock covers the scheduling call. Once the task
        exists the lock is upgraded to its full duration; a failed upgrade
        is only logged since the task is already scheduled.

        Raises:
            LockError: If the provisional lock is owned by another job
        """
        await self.lock(ttl=self.worker.runtime.settings.lock_provisional_ttl)
        result = await call_next()

        try:
            await self.lock()
        except LockError as e:
            self.worker.logger.warning(f"Unable to upgrade provisional lock {self.unique_id}: {e}")

        return result
