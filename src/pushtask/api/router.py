"""Processing endpoint receiving tasks from the delivery backend.

POST {prefix}/run executes one job payload. The response status tells the
backend whether to redeliver:

- 204 No Content: the job ran (or was skipped by a guard)
- 205 Reset Content: the job is dead, do not retry
- 404 Not Found: the payload is malformed or names an unknown worker
- 422 Unprocessable Entity: the job failed and should be retried
- 401 Unauthorized: missing or invalid bearer token
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Annotated, Any

import orjson
from fastapi import APIRouter, Header, HTTPException, Request, Response

from pushtask.errors import AuthenticationError
from pushtask.runtime import ExecutionStatus
from pushtask.security import verify_or_raise

if TYPE_CHECKING:
    from pushtask.runtime import JobRuntime

logger = logging.getLogger(__name__)

RETRY_HEADER = "X-Task-Retry-Count"
TASK_ID_HEADER = "X-Task-Id"
ENCODING_HEADER = "Content-Transfer-Encoding"


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an Authorization header value."""
    if not authorization:
        return None
    parts = authorization.split()
    return parts[-1] if parts else None


def decode_body(content: bytes, encoding: str | None) -> Any:
    """Decode a request body, base64-decoding it first if requested.

    Raises:
        ValueError: If the body cannot be decoded
    """
    if (encoding or "").lower() == "base64":
        try:
            content = base64.b64decode(content, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 body: {e}") from e

    try:
        return orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON body: {e}") from e


def parse_retries(value: str | None) -> int:
    try:
        return max(int(value or 0), 0)
    except ValueError:
        return 0


def create_router(runtime: JobRuntime, prefix: str = "/pushtask") -> APIRouter:
    """Build the processing router bound to a runtime."""
    router = APIRouter(prefix=prefix, tags=["Jobs"])

    @router.post("/run", status_code=204)
    async def run(
        request: Request,
        authorization: Annotated[str | None, Header()] = None,
        retry_count: Annotated[str | None, Header(alias=RETRY_HEADER)] = None,
        task_id: Annotated[str | None, Header(alias=TASK_ID_HEADER)] = None,
        encoding: Annotated[str | None, Header(alias=ENCODING_HEADER)] = None,
    ) -> Response:
        """Execute a delivered job payload."""
        try:
            verify_or_raise(bearer_token(authorization), runtime.settings)
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e

        try:
            payload = decode_body(await request.body(), encoding)
        except ValueError as e:
            logger.error(f"Rejecting task {task_id}: {e}")
            return Response(status_code=ExecutionStatus.INVALID.http_status)

        status = await runtime.execute_payload(
            payload,
            retries=parse_retries(retry_count),
            task_id=task_id,
        )
        return Response(status_code=status.http_status)

    return router
