"""Shared test fixtures for pytest.

ENVIRONMENT is pinned to "test" before the app is imported so settings load
without an .env file. The inference backend is never contacted: every test
talks to a `FakeBackend` mounted on an `httpx.MockTransport`.
"""

import asyncio
import json
import os
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Generator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ.setdefault("ENVIRONMENT", "test")

from api.ai import get_relay_service
from core.config import BackendConfig
from main import app
from services.relay import RelayService, create_backend_client


BACKEND_URL = "http://ollama.test"
DEFAULT_MODEL = "llama3.2"

Handler = Callable[[httpx.Request], httpx.Response]


def ndjson(*records: dict[str, Any]) -> bytes:
    """Encode records the way Ollama streams them: one JSON object per line."""
    return b"".join(json.dumps(r).encode() + b"\n" for r in records)


def token_records(*tokens: str) -> bytes:
    """A complete generation: one record per token, then the done record."""
    records: list[dict[str, Any]] = [
        {"model": DEFAULT_MODEL, "response": t, "done": False} for t in tokens
    ]
    records.append({"model": DEFAULT_MODEL, "response": "", "done": True})
    return ndjson(*records)


def streamed(*parts: bytes, error: Exception | None = None) -> AsyncIterator[bytes]:
    """Body that arrives in separate reads, optionally failing afterwards."""

    async def _body() -> AsyncIterator[bytes]:
        for part in parts:
            yield part
        if error is not None:
            raise error

    return _body()


class FakeBackend:
    """Ollama stand-in that records every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.generate: Handler = lambda _request: httpx.Response(
            200, content=token_records("Hi", " there", "!")
        )
        self.tags: Handler = lambda _request: httpx.Response(
            200, json={"models": [{"name": DEFAULT_MODEL}]}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/generate":
            return self.generate(request)
        if request.url.path == "/api/tags":
            return self.tags(request)
        return httpx.Response(404, text="not found")

    @property
    def generate_payloads(self) -> list[dict[str, Any]]:
        return [
            json.loads(r.content) for r in self.requests if r.url.path == "/api/generate"
        ]


@pytest.fixture
def backend_config() -> BackendConfig:
    return BackendConfig(base_url=BACKEND_URL, default_model=DEFAULT_MODEL)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def relay_service(
    backend_config: BackendConfig, fake_backend: FakeBackend
) -> AsyncGenerator[RelayService, None]:
    transport = httpx.MockTransport(fake_backend)
    async with create_backend_client(backend_config, transport=transport) as client:
        yield RelayService(backend_config, client)


@pytest_asyncio.fixture
async def relay_app(relay_service: RelayService) -> AsyncGenerator[FastAPI, None]:
    """The real application with its relay wired to the fake backend."""
    app.dependency_overrides[get_relay_service] = lambda: relay_service
    yield app
    app.dependency_overrides.pop(get_relay_service, None)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def async_client(relay_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async client for the relay, backed by the fake inference backend."""
    transport = ASGITransport(app=relay_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def sse_body(*blocks: str) -> bytes:
    """Relay wire format: each block is terminated by a blank line."""
    return "".join(f"{block}\n\n" for block in blocks).encode()


class HeldStream(httpx.AsyncByteStream):
    """Relay body that sends `first`, then stalls until released."""

    def __init__(self, first: bytes, late: bytes = b"data: late\n\n") -> None:
        self.first = first
        self.late = late
        self.release = asyncio.Event()
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self.first
        await self.release.wait()
        yield self.late

    async def aclose(self) -> None:
        self.closed = True


def relay_stub(handler: Handler) -> AsyncClient:
    """Client whose requests to the relay are answered by `handler`."""
    return AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay")
