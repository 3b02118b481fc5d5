"""Job entity: the serializable description of a unit of work.

A job is what travels through the delivery backend. It names the worker
class to run, its arguments and a metadata map the coordination subsystems
use to attach parent batch ids, cron schedule ids and nominal run times.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any
from uuid import uuid4

from pushtask.errors import InvalidWorkerError

DEFAULT_QUEUE = "default"


def _new_id() -> str:
    return str(uuid4())


@dataclass
class Job:
    """Job definition with metadata and delivery state."""

    worker: str
    args: list[Any] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    queue: str = DEFAULT_QUEUE
    id: str = field(default_factory=_new_id)
    retries: int = 0  # Incremented by the delivery backend
    task_id: str | None = None

    # Local state, never serialized
    schedule_time: datetime | None = None
    reenqueued: bool = False

    def get_meta(self, key: str) -> Any:
        return self.meta.get(key)

    def set_meta(self, key: str, value: Any) -> None:
        self.meta[key] = value

    def to_payload(self) -> dict[str, Any]:
        """Serialize job to the payload delivered to the processing endpoint."""
        return {
            "worker": self.worker,
            "job_id": self.id,
            "job_args": self.args,
            "job_meta": self.meta,
            "job_queue": self.queue,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize job including delivery state, for persistence."""
        return {
            **self.to_payload(),
            "job_retries": self.retries,
            "task_id": self.task_id,
        }

    @classmethod
    def from_payload(
        cls,
        data: dict[str, Any],
        retries: int | None = None,
        task_id: str | None = None,
    ) -> Job:
        """Deserialize job from a delivered payload or a persisted dict.

        Raises:
            InvalidWorkerError: If the payload is not a job payload
        """
        if not isinstance(data, dict) or not isinstance(data.get("worker"), str):
            raise InvalidWorkerError()

        args = data.get("job_args") or []
        meta = data.get("job_meta") or {}
        if not isinstance(args, list) or not isinstance(meta, dict):
            raise InvalidWorkerError(data["worker"])

        return cls(
            worker=data["worker"],
            args=list(args),
            meta=dict(meta),
            queue=data.get("job_queue") or DEFAULT_QUEUE,
            id=data.get("job_id") or _new_id(),
            retries=int(retries if retries is not None else data.get("job_retries") or 0),
            task_id=task_id if task_id is not None else data.get("task_id"),
        )

    def new_instance(self) -> Job:
        """Copy of this job with a fresh id and no delivery state."""
        return replace(
            self,
            args=list(self.args),
            meta=dict(self.meta),
            id=_new_id(),
            retries=0,
            task_id=None,
            schedule_time=None,
            reenqueued=False,
        )
