"""FastAPI application factory for the processing endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from pushtask.api.router import create_router
from pushtask.observability import configure_logging
from pushtask.runtime import JobRuntime
from pushtask.store.redis import close_redis

logger = logging.getLogger(__name__)


def create_app(runtime: JobRuntime, prefix: str = "/pushtask") -> FastAPI:
    """Create an application serving the processing endpoint of a runtime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(
            json_format=runtime.settings.log_json,
            level=runtime.settings.log_level,
        )
        logger.info(f"Starting {runtime.settings.app_name} processing endpoint")

        yield

        logger.info(f"Shutting down {runtime.settings.app_name}")
        await close_redis()

    app = FastAPI(
        title=runtime.settings.app_name,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.include_router(create_router(runtime, prefix=prefix))
    return app
