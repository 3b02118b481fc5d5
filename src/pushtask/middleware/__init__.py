"""Middleware chain for scheduling (client side) and execution (server side)."""

from pushtask.middleware.chain import Entry, Middleware, MiddlewareChain, Next

__all__ = [
    "Entry",
    "Middleware",
    "MiddlewareChain",
    "Next",
]
