"""Tests for the processing endpoint."""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator
from typing import Any

import orjson
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pushtask.api import create_app
from pushtask.api.router import (
    RETRY_HEADER,
    TASK_ID_HEADER,
    bearer_token,
    decode_body,
    parse_retries,
)
from pushtask.config import Settings
from pushtask.errors import DeadWorkerError
from pushtask.jobs import Worker
from pushtask.runtime import JobRuntime
from pushtask.security import verification_token

RUN_URL = "/pushtask/run"

CALLS: list[dict[str, Any]] = []


@pytest.fixture(autouse=True)
def reset_calls() -> None:
    CALLS.clear()


class EchoWorker(Worker):
    async def perform(self, outcome: str = "ok") -> None:
        CALLS.append({"retries": self.job.retries, "task_id": self.job.task_id})
        if outcome == "fail":
            raise RuntimeError("try again")
        if outcome == "dead":
            raise DeadWorkerError("give up")


@pytest_asyncio.fixture
async def client(runtime: JobRuntime) -> AsyncIterator[AsyncClient]:
    runtime.registry.register(EchoWorker)
    app = create_app(runtime)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {verification_token(settings)}"}


def payload(outcome: str = "ok", worker: str = "EchoWorker") -> dict[str, Any]:
    return {"worker": worker, "job_id": "job-1", "job_args": [outcome], "job_meta": {}}


class TestRunEndpoint:
    """Tests for POST /pushtask/run."""

    @pytest.mark.asyncio
    async def test_success_returns_204(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.post(RUN_URL, json=payload(), headers=auth_headers)

        assert response.status_code == 204
        assert CALLS == [{"retries": 0, "task_id": None}]

    @pytest.mark.asyncio
    async def test_failure_returns_422(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.post(RUN_URL, json=payload("fail"), headers=auth_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_dead_returns_205(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ) -> None:
        response = await client.post(RUN_URL, json=payload("dead"), headers=auth_headers)

        assert response.status_code == 205

    @pytest.mark.asyncio
    async def test_exhausted_retries_returns_205(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        """A failure on the last allowed delivery is reported dead."""
        headers = {**auth_headers, RETRY_HEADER: "3"}

        response = await client.post(RUN_URL, json=payload("fail"), headers=headers)

        assert response.status_code == 205

    @pytest.mark.asyncio
    async def test_unknown_worker_returns_404(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.post(RUN_URL, json=payload(worker="Nope"), headers=auth_headers)

        assert response.status_code == 404
        assert CALLS == []

    @pytest.mark.asyncio
    async def test_malformed_body_returns_404(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        response = await client.post(RUN_URL, content=b"{not json", headers=auth_headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delivery_headers_forwarded(
        self, client: AsyncClient, auth_headers: dict[str, str]
    ) -> None:
        headers = {**auth_headers, RETRY_HEADER: "2", TASK_ID_HEADER: "task-42"}

        response = await client.post(RUN_URL, json=payload(), headers=headers)

        assert response.status_code == 204
        assert CALLS == [{"retries": 2, "task_id": "task-42"}]

    @pytest.mark.asyncio
    async def test_base64_body(self, client: AsyncClient, auth_headers: dict[str, str]) -> None:
        body = base64.b64encode(orjson.dumps(payload()))
        headers = {**auth_headers, "Content-Transfer-Encoding": "base64"}

        response = await client.post(RUN_URL, content=body, headers=headers)

        assert response.status_code == 204
        assert len(CALLS) == 1


class TestRunAuthentication:
    """Tests for bearer token verification."""

    @pytest.mark.asyncio
    async def test_missing_token_returns_401(self, client: AsyncClient) -> None:
        response = await client.post(RUN_URL, json=payload())

        assert response.status_code == 401
        assert CALLS == []

    @pytest.mark.asyncio
    async def test_wrong_secret_returns_401(self, client: AsyncClient) -> None:
        token = verification_token(Settings(secret="another-secret"))

        response = await client.post(
            RUN_URL, json=payload(), headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert CALLS == []


class TestRequestHelpers:
    """Tests for request parsing helpers."""

    @pytest.mark.parametrize(
        ("header", "expected"),
        [(None, None), ("", None), ("Bearer abc", "abc"), ("abc", "abc")],
    )
    def test_bearer_token(self, header: str | None, expected: str | None) -> None:
        assert bearer_token(header) == expected

    def test_decode_body(self) -> None:
        assert decode_body(b'{"a": 1}', None) == {"a": 1}
        assert decode_body(base64.b64encode(b'{"a": 1}'), "BASE64") == {"a": 1}

    @pytest.mark.parametrize(
        ("content", "encoding"),
        [(b"not json", None), (b"%%%", "base64"), (base64.b64encode(b"nope"), "base64")],
    )
    def test_decode_body_errors(self, content: bytes, encoding: str | None) -> None:
        with pytest.raises(ValueError):
            decode_body(content, encoding)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 0), ("", 0), ("4", 4), ("-1", 0), ("many", 0)],
    )
    def test_parse_retries(self, value: str | None, expected: int) -> None:
        assert parse_retries(value) == expected
