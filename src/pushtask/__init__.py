"""Coordination layer for push-based background jobs.

Jobs are serialized and handed to a delivery backend, which later pushes
them to the processing endpoint. Unique job locks, batch job trees and
cron instance guards coordinate through a shared key-value store.
"""

from pushtask.backend import DeliveryBackend, InMemoryBackend, TaskRequest
from pushtask.config import Settings
from pushtask.errors import (
    AuthenticationError,
    DeadWorkerError,
    InvalidWorkerError,
    LockError,
    PushTaskError,
    StoreLockTimeoutError,
)
from pushtask.jobs import Job, Worker, WorkerRegistry
from pushtask.runtime import ExecutionStatus, JobRuntime, install_middleware
from pushtask.store import KeyValueStore, MemoryStore, RedisStore

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "DeadWorkerError",
    "DeliveryBackend",
    "ExecutionStatus",
    "InMemoryBackend",
    "InvalidWorkerError",
    "Job",
    "JobRuntime",
    "KeyValueStore",
    "LockError",
    "MemoryStore",
    "PushTaskError",
    "RedisStore",
    "Settings",
    "StoreLockTimeoutError",
    "TaskRequest",
    "Worker",
    "WorkerRegistry",
    "install_middleware",
]
