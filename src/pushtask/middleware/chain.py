"""Ordered middleware chain wrapped around job scheduling and execution.

Each entry stores an interceptor class plus its constructor arguments, so a
fresh interceptor is built for every invocation. Interceptors are async
callables receiving the worker and a continuation:

    class TimingMiddleware:
        async def __call__(self, worker: Worker, call_next: Next) -> Any:
            started = time.monotonic()
            try:
                return await call_next()
            finally:
                logger.info(f"{worker.job.id} took {time.monotonic() - started:.3f}s")

An interceptor that never awaits ``call_next`` short-circuits the rest of
the chain and the wrapped handler.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from typing import Any, Protocol

Next = Callable[[], Awaitable[Any]]


class Middleware(Protocol):
    """Interceptor protocol."""

    async def __call__(self, context: Any, call_next: Next) -> Any: ...


class Entry:
    """Middleware class with the arguments used to build it."""

    def __init__(self, klass: type[Middleware], *args: Any, **kwargs: Any) -> None:
        self.klass = klass
        self.args = args
        self.kwargs = kwargs

    def make_new(self) -> Middleware:
        return self.klass(*self.args, **self.kwargs)

    def __repr__(self) -> str:
        return f"Entry({self.klass.__name__})"


class MiddlewareChain:
    """Mutable, ordered list of middleware entries."""

    def __init__(self) -> None:
        self._entries: list[Entry] = []

    @property
    def entries(self) -> list[Entry]:
        return self._entries

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _index(self, klass: type[Middleware]) -> int | None:
        for i, entry in enumerate(self._entries):
            if entry.klass is klass:
                return i
        return None

    def exists(self, klass: type[Middleware]) -> bool:
        return self._index(klass) is not None

    def empty(self) -> bool:
        return not self._entries

    def remove(self, klass: type[Middleware]) -> None:
        self._entries = [entry for entry in self._entries if entry.klass is not klass]

    def add(self, klass: type[Middleware], *args: Any, **kwargs: Any) -> None:
        """Append a middleware, replacing an existing entry of the same class."""
        self.remove(klass)
        self._entries.append(Entry(klass, *args, **kwargs))

    def prepend(self, klass: type[Middleware], *args: Any, **kwargs: Any) -> None:
        """Insert a middleware at the head, replacing an existing entry."""
        self.remove(klass)
        self._entries.insert(0, Entry(klass, *args, **kwargs))

    def _take_or_build(self, klass: type[Middleware], *args: Any, **kwargs: Any) -> Entry:
        i = self._index(klass)
        if i is None:
            return Entry(klass, *args, **kwargs)
        return self._entries.pop(i)

    def insert_before(
        self,
        old_klass: type[Middleware],
        new_klass: type[Middleware],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Insert (or move) ``new_klass`` before ``old_klass``.

        Falls back to the head of the chain when ``old_klass`` is absent.
        """
        entry = self._take_or_build(new_klass, *args, **kwargs)
        i = self._index(old_klass)
        self._entries.insert(0 if i is None else i, entry)

    def insert_after(
        self,
        old_klass: type[Middleware],
        new_klass: type[Middleware],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        """Insert (or move) ``new_klass`` after ``old_klass``.

        Falls back to the tail of the chain when ``old_klass`` is absent.
        """
        entry = self._take_or_build(new_klass, *args, **kwargs)
        i = self._index(old_klass)
        self._entries.insert(len(self._entries) if i is None else i + 1, entry)

    def retrieve(self) -> list[Middleware]:
        """Build fresh middleware instances in chain order."""
        return [entry.make_new() for entry in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    async def invoke(self, context: Any, handler: Next) -> Any:
        """Run ``handler`` wrapped by every middleware in the chain."""
        if self.empty():
            return await handler()

        call_next = handler
        for middleware in reversed(self.retrieve()):
            call_next = _bind(middleware, context, call_next)
        return await call_next()


def _bind(middleware: Middleware, context: Any, call_next: Next) -> Next:
    async def run() -> Any:
        return await middleware(context, call_next)

    return run
