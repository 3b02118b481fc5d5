"""Structured logging for job execution.

Every execution runs inside a LogContext carrying the job id, worker name
and task id, so any record emitted while a job runs can be correlated with
it. Worker code logs through ``worker.logger`` (a JobLogger), which also
prefixes messages and attaches a truncated copy of the job context.

    configure_logging(json_format=True, level="INFO")

    with LogContext(job_id=job.id, worker=job.worker):
        logger.info("Fetching report")  # Carries job_id and worker
"""

from __future__ import annotations

import contextvars
import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from pushtask.jobs.worker import Worker

job_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="")
worker_var: contextvars.ContextVar[str] = contextvars.ContextVar("worker", default="")
task_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("task_id", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "job_id": job_id_var,
    "worker": worker_var,
    "task_id": task_id_var,
}

# Attributes every LogRecord has; anything else came through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Third-party loggers too chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def job_context() -> dict[str, str]:
    """Job context of the current execution, empty outside of one."""
    return {key: var.get() for key, var in _CONTEXT_VARS.items() if var.get()}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Example:
        {"timestamp": "2026-05-01T02:00:00.125000+00:00", "level": "INFO",
         "logger": "pushtask.worker", "message": "[ReportWorker][abc-123] Job done",
         "job_id": "abc-123", "worker": "ReportWorker", "job_queue": "default"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **job_context(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, _ = record.exc_info
            entry["exception"] = {
                "type": error_type.__name__,
                "message": str(error),
                "traceback": self.formatException(record.exc_info),
            }

        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Single-line human-readable records for development.

    2026-05-01 02:00:00 | INFO     | pushtask.worker | [ReportWorker][abc-123] Job done
    | job_id=abc-123 worker=ReportWorker
    """

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        color = self.LEVEL_COLORS.get(record.levelno)
        if self.use_colors and color:
            level = f"\033[{color}m{level}\033[0m"

        parts = [self.formatTime(record, self.datefmt), level, record.name, record.getMessage()]
        context = job_context()
        if context:
            parts.append(" ".join(f"{key}={value}" for key, value in context.items()))

        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Route all logging to stderr with a pushtask formatter.

    Replaces any handler already installed on the root logger.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """Bind job context variables for the duration of a block.

    None values leave the current binding untouched; bindings are restored
    on exit, so contexts nest.
    """

    def __init__(self, **context: Any) -> None:
        self.context = {key: str(value) for key, value in context.items() if value is not None}
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.context.items():
            var = _CONTEXT_VARS.get(key)
            if var is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *exc_info: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def truncate(
    payload: Any,
    depth: int = 0,
    max_depth: int = 3,
    string_limit: int = 64,
    array_limit: int = 10,
) -> Any:
    """Shorten a JSON-like payload so it can be attached to log records.

    A negative limit disables the corresponding truncation.
    """
    options = {"max_depth": max_depth, "string_limit": string_limit, "array_limit": array_limit}

    if isinstance(payload, list):
        if max_depth > -1 and depth > max_depth:
            return [f"...{len(payload)} items..."]
        if array_limit > -1:
            head = [truncate(e, depth=depth + 1, **options) for e in payload[:array_limit]]
            if len(payload) > array_limit:
                head.append(f"...{len(payload) - array_limit} items...")
            return head
        return [truncate(e, depth=depth + 1, **options) for e in payload]

    if isinstance(payload, dict):
        if max_depth > -1 and depth > max_depth:
            return "{hash}"
        return {k: truncate(v, depth=depth + 1, **options) for k, v in payload.items()}

    if isinstance(payload, str) and string_limit > -1 and len(payload) > string_limit:
        return payload[: max(string_limit - 3, 0)] + "..."

    return payload


class JobLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter bound to a worker instance.

    Messages are prefixed with the worker class and job id, and the job
    context (worker, job id, queue, meta, task id) is attached as extras.
    """

    def __init__(self, worker: Worker, logger: logging.Logger | None = None) -> None:
        super().__init__(logger or logging.getLogger("pushtask.worker"), {})
        self.worker = worker

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        job = self.worker.job
        context = {
            "worker": job.worker,
            "job_id": job.id,
            "job_queue": job.queue,
            "job_meta": truncate(job.meta),
        }
        if job.task_id:
            context["task_id"] = job.task_id

        kwargs["extra"] = {**context, **kwargs.get("extra", {})}
        return f"[{job.worker}][{job.id}] {msg}", kwargs
