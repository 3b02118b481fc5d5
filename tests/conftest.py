"""Shared fixtures: in-memory store and backend wired into a runtime."""

from __future__ import annotations

import pytest

from pushtask.backend import InMemoryBackend
from pushtask.config import Settings
from pushtask.jobs import WorkerRegistry
from pushtask.runtime import JobRuntime, install_middleware
from pushtask.store import MemoryStore

TEST_SECRET = "test-secret"


@pytest.fixture
def settings() -> Settings:
    """Settings with a known secret and fast store mutex."""
    return Settings(
        secret=TEST_SECRET,
        max_retries=3,
        lock_ttl=600,
        lock_provisional_ttl=3,
        store_lock_wait=0.001,
        store_lock_timeout=1.0,
    )


@pytest.fixture
def store(settings: Settings) -> MemoryStore:
    return MemoryStore(settings)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def registry() -> WorkerRegistry:
    return WorkerRegistry()


@pytest.fixture
def runtime(
    store: MemoryStore,
    backend: InMemoryBackend,
    settings: Settings,
    registry: WorkerRegistry,
) -> JobRuntime:
    """Runtime with batch, unique job and cron middleware installed."""
    return install_middleware(JobRuntime(store, backend, settings=settings, registry=registry))


@pytest.fixture
def bare_runtime(
    store: MemoryStore,
    backend: InMemoryBackend,
    settings: Settings,
    registry: WorkerRegistry,
) -> JobRuntime:
    """Runtime without any middleware."""
    return JobRuntime(store, backend, settings=settings, registry=registry)
