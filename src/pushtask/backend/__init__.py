"""Task delivery backends."""

from pushtask.backend.base import DeliveryBackend, TaskRequest
from pushtask.backend.memory import InMemoryBackend, MemoryTask

__all__ = [
    "DeliveryBackend",
    "InMemoryBackend",
    "MemoryTask",
    "TaskRequest",
]
