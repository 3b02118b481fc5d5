"""Duplicate job suppression through fingerprint locks."""

from pushtask.unique_job.conflicts import (
    CONFLICT_STRATEGIES,
    ConflictStrategy,
    Raise,
    Reject,
    Reschedule,
    resolve_conflict_strategy,
)
from pushtask.unique_job.job import UniqueJob
from pushtask.unique_job.locks import (
    LOCKS,
    Lock,
    NoOp,
    UntilCompleted,
    UntilExecuted,
    UntilExecuting,
    WhileExecuting,
    resolve_lock,
)
from pushtask.unique_job.middleware import UniqueJobClientMiddleware, UniqueJobServerMiddleware

__all__ = [
    "CONFLICT_STRATEGIES",
    "LOCKS",
    "ConflictStrategy",
    "Lock",
    "NoOp",
    "Raise",
    "Reject",
    "Reschedule",
    "UniqueJob",
    "UniqueJobClientMiddleware",
    "UniqueJobServerMiddleware",
    "UntilCompleted",
    "UntilExecuted",
    "UntilExecuting",
    "WhileExecuting",
    "resolve_conflict_strategy",
    "resolve_lock",
]
