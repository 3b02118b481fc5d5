"""Delivery backend interface.

A delivery backend stores HTTP task requests and later replays them against
the processing endpoint. Redelivery timing and counting belong to the
backend; the coordination layer only creates and cancels tasks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class TaskRequest:
    """HTTP request descriptor replayed by the delivery backend."""

    url: str
    body: dict[str, Any]
    http_method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    schedule_time: datetime | None = None
    queue: str = "default"
    dispatch_deadline: int | None = None

    @property
    def worker(self) -> str | None:
        return self.body.get("worker")


class DeliveryBackend(ABC):
    """Abstract delivery backend interface."""

    @abstractmethod
    async def schedule(self, request: TaskRequest) -> str:
        """Create a task and return its id."""
        pass

    @abstractmethod
    async def delete(self, task_id: str) -> bool:
        """Cancel a task. Returns False if the task does not exist."""
        pass
