"""Redis-backed key-value store.

Uses redis-py async clients shared per URL at module level, so every
process and host coordinating jobs shares the same keys.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, TypeVar, cast

import redis.asyncio as redis

from pushtask.config import Settings
from pushtask.config import settings as default_settings
from pushtask.store.base import KeyValueStore

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

# Shared clients keyed by URL, used by every RedisStore built without an explicit client
_redis_clients: dict[str, Redis] = {}

# Compare-before-delete, run atomically on the server
DELETE_IF_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def _await_redis(result: Awaitable[T] | T) -> Awaitable[T]:
    """Cast redis-py async results to an awaitable for mypy."""
    return cast(Awaitable[T], result)


async def get_redis(url: str | None = None) -> Redis:
    """Shared client for ``url``, created on first use.

    Defaults to the ``redis_url`` of the process settings.
    """
    url = url or default_settings.redis_url
    client = _redis_clients.get(url)
    if client is None:
        client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            encoding="utf-8",
            decode_responses=True,
        )
        _redis_clients[url] = client
    return client


async def close_redis() -> None:
    """Release every shared client, e.g. on application shutdown."""
    while _redis_clients:
        _, client = _redis_clients.popitem()
        await client.aclose()


def _decode(value: Any) -> Any:
    return value.decode() if isinstance(value, bytes) else value


class RedisStore(KeyValueStore):
    """Key-value store on top of a shared Redis instance."""

    def __init__(self, settings: Settings | None = None, client: Redis | None = None) -> None:
        super().__init__(settings)
        self._redis = client

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis(self.settings.redis_url)
        return self._redis

    async def get(self, key: str) -> str | None:
        client = await self._get_redis()
        return cast(str | None, _decode(await client.get(key)))

    async def set(
        self,
        key: str,
        value: str,
        ex: float | None = None,
        nx: bool = False,
    ) -> bool:
        client = await self._get_redis()
        if ex is not None and not float(ex).is_integer():
            result = await client.set(key, value, px=int(ex * 1000), nx=nx)
        else:
            result = await client.set(key, value, ex=int(ex) if ex is not None else None, nx=nx)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        client = await self._get_redis()
        return int(await client.delete(*keys))

    async def delete_if(self, key: str, value: str) -> bool:
        client = await self._get_redis()
        result = await _await_redis(client.eval(DELETE_IF_SCRIPT, 1, key, value))
        return bool(result)

    async def ttl(self, key: str) -> float | None:
        client = await self._get_redis()
        pttl = int(await client.pttl(key))
        # -2: missing key, -1: no expiry
        if pttl < 0:
            return None
        return pttl / 1000

    async def scan(self, pattern: str) -> list[str]:
        client = await self._get_redis()
        return [_decode(key) async for key in client.scan_iter(match=pattern)]

    async def sadd(self, key: str, *members: str) -> int:
        client = await self._get_redis()
        return int(await _await_redis(client.sadd(key, *members)))

    async def srem(self, key: str, *members: str) -> int:
        client = await self._get_redis()
        return int(await _await_redis(client.srem(key, *members)))

    async def smembers(self, key: str) -> set[str]:
        client = await self._get_redis()
        members = await _await_redis(client.smembers(key))
        return {_decode(member) for member in members}

    async def health_check(self) -> bool:
        """Whether the store answers a PING."""
        try:
            client = await self._get_redis()
            await _await_redis(client.ping())
            return True
        except redis.RedisError:
            return False
