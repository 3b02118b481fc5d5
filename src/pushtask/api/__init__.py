"""HTTP boundary: the processing endpoint called by the delivery backend."""

from pushtask.api.app import create_app
from pushtask.api.router import create_router

__all__ = ["create_app", "create_router"]
