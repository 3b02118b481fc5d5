"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from pushtask.jobs import Worker
from pushtask.observability.logging import (
    ConsoleFormatter,
    JobLogger,
    JsonFormatter,
    LogContext,
    configure_logging,
    job_id_var,
    truncate,
    worker_var,
)
from pushtask.runtime import JobRuntime


class AuditWorker(Worker):
    async def perform(self) -> None:
        pass


def make_record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="pushtask.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTruncate:
    """Tests for payload truncation."""

    def test_short_values_unchanged(self) -> None:
        payload = {"a": [1, 2], "b": "short"}

        assert truncate(payload) == payload

    def test_long_string(self) -> None:
        assert truncate("x" * 100, string_limit=10) == "xxxxxxx..."

    def test_long_array(self) -> None:
        assert truncate(list(range(5)), array_limit=2) == [0, 1, "...3 items..."]

    def test_max_depth(self) -> None:
        payload = {"a": {"b": {"c": 1}}, "l": [[1, 2]]}

        assert truncate(payload, max_depth=1) == {"a": {"b": "{hash}"}, "l": [["...2 items..."]]}

    def test_negative_limits_disable_truncation(self) -> None:
        payload = ["x" * 100] * 20

        assert truncate(payload, string_limit=-1, array_limit=-1) == payload


class TestJsonFormatter:
    """Tests for JSON output."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "pushtask.test"
        assert data["message"] == "hello"
        assert "job_id" not in data

    def test_includes_job_context(self) -> None:
        with LogContext(job_id="job-1", worker="AuditWorker"):
            data = json.loads(JsonFormatter().format(make_record()))

        assert data["job_id"] == "job-1"
        assert data["worker"] == "AuditWorker"

    def test_extra_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(job_meta={"k": "v"}, blob=object())))

        assert data["job_meta"] == {"k": "v"}
        assert data["blob"].startswith("<object")

    def test_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"


class TestLogContext:
    """Tests for context propagation."""

    def test_sets_and_resets(self) -> None:
        assert job_id_var.get() == ""

        with LogContext(job_id="outer", worker="AuditWorker"):
            with LogContext(job_id="inner"):
                assert job_id_var.get() == "inner"
                assert worker_var.get() == "AuditWorker"
            assert job_id_var.get() == "outer"

        assert job_id_var.get() == ""
        assert worker_var.get() == ""

    def test_none_values_ignored(self) -> None:
        with LogContext(job_id="job-1", task_id=None):
            assert job_id_var.get() == "job-1"


class TestJobLogger:
    """Tests for the job logger adapter."""

    def test_prefix_and_extras(
        self,
        bare_runtime: JobRuntime,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        worker = AuditWorker.build(bare_runtime, meta={"note": "n" * 100})
        worker.job.task_id = "task-1"

        with caplog.at_level(logging.INFO, logger="pushtask.worker"):
            worker.logger.info("Starting job...")

        record = caplog.records[-1]
        assert record.getMessage() == f"[AuditWorker][{worker.job.id}] Starting job..."
        assert record.job_id == worker.job.id
        assert record.task_id == "task-1"
        assert record.job_queue == "default"
        assert len(record.job_meta["note"]) == 64

    def test_custom_logger(self, bare_runtime: JobRuntime) -> None:
        base = logging.getLogger("pushtask.custom")
        adapter = JobLogger(AuditWorker.build(bare_runtime), logger=base)

        assert adapter.logger is base


class TestConfigureLogging:
    """Tests for root logger setup."""

    @pytest.fixture(autouse=True)
    def restore_root(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json(self) -> None:
        configure_logging(json_format=True, level="debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[-1].formatter, JsonFormatter)

    def test_console(self) -> None:
        configure_logging(json_format=False, level="WARNING")

        assert isinstance(logging.getLogger().handlers[-1].formatter, ConsoleFormatter)
