"""Observability helpers for pushtask.

Logging only: JSON/console formatters, job context variables and the
per-job logger adapter.
"""

from pushtask.observability.logging import (
    ConsoleFormatter,
    JobLogger,
    JsonFormatter,
    LogContext,
    configure_logging,
    job_id_var,
    task_id_var,
    truncate,
    worker_var,
)

__all__ = [
    "ConsoleFormatter",
    "JobLogger",
    "JsonFormatter",
    "LogContext",
    "configure_logging",
    "job_id_var",
    "task_id_var",
    "truncate",
    "worker_var",
]
