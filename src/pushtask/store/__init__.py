"""Key-value store backends used as the coordination point."""

from pushtask.store.base import KeyValueStore
from pushtask.store.keys import StoreKeys
from pushtask.store.memory import MemoryStore
from pushtask.store.redis import RedisStore, close_redis, get_redis

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "StoreKeys",
    "close_redis",
    "get_redis",
]
