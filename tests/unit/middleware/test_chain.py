"""Tests for the middleware chain."""

from __future__ import annotations

from typing import Any

import pytest

from pushtask.middleware import MiddlewareChain, Next


class Recorder:
    """Middleware appending its tag to the context before and after."""

    tag = "recorder"

    def __init__(self, tag: str | None = None) -> None:
        self.tag = tag or type(self).tag

    async def __call__(self, context: list[str], call_next: Next) -> Any:
        context.append(f"{self.tag}:before")
        result = await call_next()
        context.append(f"{self.tag}:after")
        return result


class First(Recorder):
    tag = "first"


class Second(Recorder):
    tag = "second"


class Third(Recorder):
    tag = "third"


class Blocker:
    """Middleware that never calls the continuation."""

    async def __call__(self, context: list[str], call_next: Next) -> Any:
        context.append("blocked")
        return "blocked"


def classes(chain: MiddlewareChain) -> list[type]:
    return [entry.klass for entry in chain]


class TestChainMutation:
    """Tests for adding, moving and removing entries."""

    def test_add_appends_in_order(self) -> None:
        """Entries are kept in insertion order."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Second)

        assert classes(chain) == [First, Second]
        assert len(chain) == 2

    def test_add_replaces_same_class(self) -> None:
        """Adding a class twice keeps a single entry, moved to the tail."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Second)
        chain.add(First, "again")

        assert classes(chain) == [Second, First]
        assert chain.entries[1].args == ("again",)

    def test_prepend(self) -> None:
        """Prepend inserts at the head."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.prepend(Second)

        assert classes(chain) == [Second, First]

    def test_insert_before_and_after(self) -> None:
        """Entries can be placed relative to another class."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Third)
        chain.insert_before(Third, Second)

        assert classes(chain) == [First, Second, Third]

        chain.insert_after(Third, First)
        assert classes(chain) == [Second, Third, First]

    def test_insert_relative_to_missing_class(self) -> None:
        """Missing anchors fall back to the head or the tail."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.insert_before(Blocker, Second)
        chain.insert_after(Blocker, Third)

        assert classes(chain) == [Second, First, Third]

    def test_remove_and_exists(self) -> None:
        """Removed classes no longer exist in the chain."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Second)
        chain.remove(First)

        assert not chain.exists(First)
        assert chain.exists(Second)

    def test_clear(self) -> None:
        """Clearing empties the chain."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.clear()

        assert chain.empty()

    def test_retrieve_builds_fresh_instances(self) -> None:
        """Each retrieval builds new instances with the stored arguments."""
        chain = MiddlewareChain()
        chain.add(Recorder, "custom")

        first = chain.retrieve()
        second = chain.retrieve()

        assert first[0] is not second[0]
        assert first[0].tag == "custom"


class TestChainInvoke:
    """Tests for invoking the chain around a handler."""

    @pytest.mark.asyncio
    async def test_empty_chain_calls_handler(self) -> None:
        """An empty chain runs the handler directly."""
        chain = MiddlewareChain()

        async def handler() -> str:
            return "done"

        assert await chain.invoke([], handler) == "done"

    @pytest.mark.asyncio
    async def test_invoke_nests_in_order(self) -> None:
        """The first entry is the outermost wrapper."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Second)
        context: list[str] = []

        async def handler() -> str:
            context.append("handler")
            return "done"

        result = await chain.invoke(context, handler)

        assert result == "done"
        assert context == [
            "first:before",
            "second:before",
            "handler",
            "second:after",
            "first:after",
        ]

    @pytest.mark.asyncio
    async def test_short_circuit(self) -> None:
        """A middleware not calling the continuation stops the chain."""
        chain = MiddlewareChain()
        chain.add(First)
        chain.add(Blocker)
        chain.add(Second)
        context: list[str] = []

        async def handler() -> str:
            context.append("handler")
            return "done"

        result = await chain.invoke(context, handler)

        assert result == "blocked"
        assert context == ["first:before", "blocked", "first:after"]

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self) -> None:
        """Handler errors unwind through the middleware."""
        chain = MiddlewareChain()
        chain.add(First)
        context: list[str] = []

        async def handler() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await chain.invoke(context, handler)

        assert context == ["first:before"]
