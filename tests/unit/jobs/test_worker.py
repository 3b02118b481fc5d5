"""Tests for the Worker base class and registry."""

from __future__ import annotations

from typing import Any

import pytest

from pushtask.errors import DeadWorkerError, InvalidWorkerError
from pushtask.jobs import Job, Worker, WorkerRegistry
from pushtask.runtime import JobRuntime

EVENTS: list[tuple[str, Any]] = []


@pytest.fixture(autouse=True)
def reset_events() -> None:
    EVENTS.clear()


class EchoWorker(Worker):
    queue = "echo"

    async def perform(self, value: str) -> str:
        EVENTS.append(("perform", value))
        return value


class FailingWorker(Worker):
    max_retries = 2

    async def perform(self) -> None:
        raise RuntimeError("boom")

    def on_error(self, error: Exception) -> None:
        EVENTS.append(("on_error", str(error)))

    async def on_dead(self, error: Exception) -> None:
        EVENTS.append(("on_dead", str(error)))


class BrokenCallbackWorker(Worker):
    async def perform(self) -> None:
        raise RuntimeError("boom")

    def on_error(self, error: Exception) -> None:
        raise ValueError("callback failure")

    def on_dead(self, error: Exception) -> None:
        raise ValueError("dead callback failure")


class DeclaredDeadWorker(Worker):
    async def perform(self) -> None:
        raise DeadWorkerError("give up")

    def on_dead(self, error: Exception) -> None:
        EVENTS.append(("on_dead", str(error)))


class Renamed(Worker):
    name = "legacy.Worker"

    async def perform(self) -> None:
        pass


class TestWorkerOptions:
    """Tests for class options."""

    def test_name_defaults_to_class_name(self) -> None:
        assert EchoWorker.name == "EchoWorker"
        assert Renamed.name == "legacy.Worker"

    def test_build(self, bare_runtime: JobRuntime) -> None:
        """Build wraps a fresh job with the worker's queue."""
        worker = EchoWorker.build(bare_runtime, "hello", meta={"k": "v"})

        assert worker.job.worker == "EchoWorker"
        assert worker.job.args == ["hello"]
        assert worker.job.meta == {"k": "v"}
        assert worker.job.queue == "echo"
        assert worker.batch is None

    def test_build_default_queue(self, bare_runtime: JobRuntime) -> None:
        worker = FailingWorker.build(bare_runtime)

        assert worker.job.queue == bare_runtime.settings.default_queue

    def test_max_retries(self, bare_runtime: JobRuntime) -> None:
        """Worker option wins over settings."""
        assert FailingWorker.build(bare_runtime).job_max_retries == 2
        worker = EchoWorker.build(bare_runtime, "x")
        assert worker.job_max_retries == bare_runtime.settings.max_retries

    def test_new_instance(self, bare_runtime: JobRuntime) -> None:
        worker = EchoWorker.build(bare_runtime, "hello")

        copy = worker.new_instance()

        assert isinstance(copy, EchoWorker)
        assert copy.job.id != worker.job.id
        assert copy.job.args == ["hello"]

    def test_perform_is_required(self, bare_runtime: JobRuntime) -> None:
        """A subclass without perform cannot be instantiated."""

        class Incomplete(Worker):
            queue = "incomplete"

        with pytest.raises(TypeError, match="perform"):
            Incomplete.build(bare_runtime)


class TestWorkerExecution:
    """Tests for execution, retry budget and callbacks."""

    @pytest.mark.asyncio
    async def test_execute(self, bare_runtime: JobRuntime) -> None:
        worker = EchoWorker.build(bare_runtime, "hello")

        assert await worker.execute() == "hello"
        assert EVENTS == [("perform", "hello")]

    @pytest.mark.asyncio
    async def test_transient_failure(self, bare_runtime: JobRuntime) -> None:
        """Failures within the retry budget propagate after on_error."""
        worker = FailingWorker(Job(worker="FailingWorker", retries=1), bare_runtime)

        with pytest.raises(RuntimeError, match="boom"):
            await worker.execute()

        assert EVENTS == [("on_error", "boom")]

    @pytest.mark.asyncio
    async def test_last_retry_declares_dead(self, bare_runtime: JobRuntime) -> None:
        """Failing the last allowed delivery declares the job dead."""
        worker = FailingWorker(Job(worker="FailingWorker", retries=2), bare_runtime)

        with pytest.raises(DeadWorkerError) as exc_info:
            await worker.execute()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert EVENTS == [("on_error", "boom"), ("on_dead", "boom")]

    @pytest.mark.asyncio
    async def test_exhausted_budget_skips_perform(self, bare_runtime: JobRuntime) -> None:
        """A delivery past the budget is dead without running."""
        worker = EchoWorker(Job(worker="EchoWorker", args=["x"], retries=26), bare_runtime)

        with pytest.raises(DeadWorkerError):
            await worker.execute()

        assert ("perform", "x") not in EVENTS

    @pytest.mark.asyncio
    async def test_declared_dead(self, bare_runtime: JobRuntime) -> None:
        """Application-raised DeadWorkerError runs on_dead."""
        worker = DeclaredDeadWorker.build(bare_runtime)

        with pytest.raises(DeadWorkerError, match="give up"):
            await worker.execute()

        assert EVENTS == [("on_dead", "give up")]

    @pytest.mark.asyncio
    async def test_broken_on_error_is_guarded(self, bare_runtime: JobRuntime) -> None:
        """A failing on_error callback does not hide the job error."""
        worker = BrokenCallbackWorker.build(bare_runtime)

        with pytest.raises(RuntimeError, match="boom"):
            await worker.execute()

    @pytest.mark.asyncio
    async def test_broken_on_dead_surfaces(self, bare_runtime: JobRuntime) -> None:
        """Terminal callback failures are not swallowed."""
        worker = BrokenCallbackWorker(
            Job(worker="BrokenCallbackWorker", retries=bare_runtime.settings.max_retries),
            bare_runtime,
        )

        with pytest.raises(ValueError, match="dead callback failure"):
            await worker.execute()

    @pytest.mark.asyncio
    async def test_run_missing_callback(self, bare_runtime: JobRuntime) -> None:
        worker = EchoWorker.build(bare_runtime, "x")

        assert await worker.run_callback("on_batch_complete") is None

    @pytest.mark.asyncio
    async def test_server_middleware_wraps_perform(self, bare_runtime: JobRuntime) -> None:
        """Execution goes through the server chain."""

        class Tagger:
            async def __call__(self, worker: Worker, call_next: Any) -> Any:
                EVENTS.append(("middleware", worker.job.worker))
                return await call_next()

        bare_runtime.server_middleware.add(Tagger)

        await EchoWorker.build(bare_runtime, "x").execute()

        assert EVENTS == [("middleware", "EchoWorker"), ("perform", "x")]


class TestWorkerRegistry:
    """Tests for the worker registry."""

    def test_register_and_resolve(self) -> None:
        registry = WorkerRegistry()
        registry.register(EchoWorker)

        assert registry.resolve("EchoWorker") is EchoWorker
        assert "EchoWorker" in registry
        assert len(registry) == 1
        assert list(registry) == ["EchoWorker"]

    def test_register_as_decorator(self) -> None:
        registry = WorkerRegistry()

        @registry.register
        class DecoratedWorker(Worker):
            pass

        assert registry.resolve("DecoratedWorker") is DecoratedWorker

    def test_register_custom_name(self) -> None:
        registry = WorkerRegistry()
        registry.register(Renamed)

        assert registry.resolve("legacy.Worker") is Renamed

    def test_resolve_unknown(self) -> None:
        with pytest.raises(InvalidWorkerError, match="Unknown"):
            WorkerRegistry().resolve("Unknown")
