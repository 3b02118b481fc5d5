"""Error taxonomy for pushtask.

- LockError: a unique job fingerprint is held by another job
- InvalidWorkerError: the payload names no resolvable worker (never retried)
- DeadWorkerError: the job failed permanently (never retried)
- AuthenticationError: the execution request carries no valid token
- StoreLockTimeoutError: the store mutex could not be acquired in time

Anything else raised by a worker is transient and left to the delivery
backend's redelivery policy.
"""

from __future__ import annotations


class PushTaskError(Exception):
    """Base exception for pushtask."""


class LockError(PushTaskError):
    """Raised when a unique job lock is owned by another job."""

    def __init__(self, job_id: str | None = None, unique_id: str | None = None):
        self.job_id = job_id
        self.unique_id = unique_id
        super().__init__(f"Lock for {unique_id} is held by another job (job: {job_id})")


class InvalidWorkerError(PushTaskError):
    """Raised when a worker class cannot be resolved from a payload."""

    def __init__(self, worker_name: str | None = None):
        self.worker_name = worker_name
        super().__init__(f"Invalid worker: {worker_name}" if worker_name else "Invalid worker")


class DeadWorkerError(PushTaskError):
    """Raised when a job is declared permanently failed."""


class AuthenticationError(PushTaskError):
    """Raised when an execution request cannot be authenticated."""


class StoreLockTimeoutError(PushTaskError):
    """Raised when the store mutex is not released within the wait budget."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock: {key}")
