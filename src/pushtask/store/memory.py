"""In-memory key-value store.

Suitable for tests and single-process development. Operations never await
internally, so each one is atomic with respect to other coroutines on the
same event loop.

For multi-process deployments, use RedisStore instead.
"""

from __future__ import annotations

import fnmatch
import time

from pushtask.config import Settings
from pushtask.store.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dictionary-backed store with key expiry."""

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__(settings)
        self._values: dict[str, tuple[str, float | None]] = {}
        self._sets: dict[str, set[str]] = {}

    def _now(self) -> float:
        return time.monotonic()

    def _live(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and expires_at <= self._now():
            del self._values[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: float | None = None,
        nx: bool = False,
    ) -> bool:
        if nx and self._live(key) is not None:
            return False

        expires_at = self._now() + ex if ex is not None else None
        self._values[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self._values[key]
                deleted += 1
            elif key in self._sets:
                del self._sets[key]
                deleted += 1
        return deleted

    async def delete_if(self, key: str, value: str) -> bool:
        if self._live(key) != value:
            return False
        del self._values[key]
        return True

    async def ttl(self, key: str) -> float | None:
        if self._live(key) is None:
            return None
        expires_at = self._values[key][1]
        return None if expires_at is None else expires_at - self._now()

    async def scan(self, pattern: str) -> list[str]:
        keys = [key for key in list(self._values) if self._live(key) is not None]
        keys.extend(self._sets)
        return sorted(key for key in keys if fnmatch.fnmatchcase(key, pattern))

    async def sadd(self, key: str, *members: str) -> int:
        current = self._sets.setdefault(key, set())
        added = len(set(members) - current)
        current.update(members)
        return added

    async def srem(self, key: str, *members: str) -> int:
        current = self._sets.get(key, set())
        removed = len(current & set(members))
        current.difference_update(members)
        if not current:
            self._sets.pop(key, None)
        return removed

    async def smembers(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))
