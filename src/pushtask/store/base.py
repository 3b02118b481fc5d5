"""Key-value store interface used as the coordination point.

Every coordination record (locks, batch state, cron flags and schedules)
lives behind this interface. Implementations only need the raw primitives;
JSON helpers and the short-lived mutex are built on top of them here.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

import orjson

from pushtask.config import Settings
from pushtask.config import settings as default_settings
from pushtask.errors import StoreLockTimeoutError
from pushtask.store.keys import StoreKeys

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract key-value store interface.

    Mutex timings come from ``settings.store_lock_*``.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.lock_duration = self.settings.store_lock_duration
        self.lock_wait = self.settings.store_lock_wait
        self.lock_timeout = self.settings.store_lock_timeout

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a raw string value."""

    @abstractmethod
    async def set(
        self,
        key: str,
        value: str,
        ex: float | None = None,
        nx: bool = False,
    ) -> bool:
        """Set a raw string value.

        Args:
            key: Store key
            value: Value to store
            ex: Expiry in seconds (None for no expiry)
            nx: Only set if the key does not exist

        Returns:
            True if the value was written
        """

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def delete_if(self, key: str, value: str) -> bool:
        """Atomically delete a key only if it holds the given value."""

    @abstractmethod
    async def ttl(self, key: str) -> float | None:
        """Remaining time to live in seconds (None if missing or persistent)."""

    @abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """List keys matching a glob-style pattern."""

    @abstractmethod
    async def sadd(self, key: str, *members: str) -> int:
        """Add members to a set."""

    @abstractmethod
    async def srem(self, key: str, *members: str) -> int:
        """Remove members from a set."""

    @abstractmethod
    async def smembers(self, key: str) -> set[str]:
        """List members of a set."""

    async def fetch(self, key: str) -> Any:
        """Get and decode a JSON value, None if missing or unparsable."""
        raw = await self.get(key)
        if raw is None:
            return None

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Discarding unparsable value for key: {key}")
            return None

    async def write(self, key: str, content: Any, ex: float | None = None) -> bool:
        """Encode and store a JSON value."""
        return await self.set(key, orjson.dumps(content).decode(), ex=ex)

    async def clear(self) -> int:
        """Delete every key visible to this store."""
        keys = await self.scan("*")
        if not keys:
            return 0
        return await self.delete(*keys)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """Short-lived mutex around a read-modify-write on ``key``.

        Acquired with set-if-absent-with-expiry and a bounded busy-wait.
        The expiry releases the mutex if its holder dies; release only
        deletes the mutex if this holder still owns it.

        Raises:
            StoreLockTimeoutError: If the mutex is not acquired in time
        """
        lock_key = StoreKeys.lock(key)
        token = uuid4().hex
        started = time.monotonic()

        while not await self.set(lock_key, token, ex=self.lock_duration, nx=True):
            if self.lock_timeout is not None and time.monotonic() - started > self.lock_timeout:
                raise StoreLockTimeoutError(lock_key, self.lock_timeout)
            await asyncio.sleep(self.lock_wait)

        try:
            yield
        finally:
            await self.delete_if(lock_key, token)
