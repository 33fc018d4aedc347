"""Focused unit tests for global exception handling behaviors.

These tests exercise the public contract via a FastAPI test app using the
installed exception handler and ExceptionNormalizationMiddleware.
"""

from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace

import pytest
from fastapi import FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.error_handler import (
    ExceptionNormalizationMiddleware,
    global_exception_handler,
)
from core.exceptions import UpstreamConnectionError, UpstreamStatusError
from core.middleware import CORRELATION_HEADER, CorrelationIdMiddleware


class PingBody(BaseModel):
    model: str = Field(min_length=3)
    attempts: int = Field(ge=1)


def _build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(ExceptionNormalizationMiddleware)
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)

    @app.post("/probe")
    async def probe(body: PingBody):  # pragma: no cover - executed via client
        return {"ok": True, "body": body.model_dump()}

    @app.get("/upstream-down")
    async def upstream_down():
        raise UpstreamConnectionError("Unable to reach the inference backend")

    @app.get("/upstream-status")
    async def upstream_status():
        raise UpstreamStatusError(503, "Upstream 503 Service Unavailable")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("Exploded with secret=should_not_leak")

    @app.get("/teapot")
    async def teapot():
        raise HTTPException(
            status_code=status.HTTP_418_IM_A_TEAPOT,
            detail="Short and stout",
        )

    return app


@pytest.fixture
def build_client(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], TestClient]:
    def _build(env: str) -> TestClient:
        monkeypatch.setattr(
            "core.error_handler.get_settings",
            lambda: SimpleNamespace(ENVIRONMENT=env),
        )
        return TestClient(_build_app(), raise_server_exceptions=False)

    return _build


def test_validation_error_production(build_client):
    client = build_client("production")
    resp = client.post("/probe", json={"model": "ab", "attempts": 0})
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"]["type"] == "validation_error"
    assert "validation_errors" not in data["error"]


def test_validation_error_development(build_client):
    client = build_client("development")
    resp = client.post("/probe", json={"model": "ab", "attempts": 0})
    assert resp.status_code == 422
    data = resp.json()
    assert "validation_errors" in data["error"]


def test_relay_error_maps_to_bad_gateway_production(build_client):
    client = build_client("production")
    resp = client.get("/upstream-down")
    assert resp.status_code == 502
    data = resp.json()
    assert data["success"] is False
    assert data["error"]["type"] == "upstream_unreachable"
    assert "details" not in data["error"]


def test_relay_error_details_in_development(build_client):
    client = build_client("development")
    resp = client.get("/upstream-status")
    assert resp.status_code == 502
    data = resp.json()
    assert data["error"]["type"] == "upstream_status"
    assert data["error"]["details"]["message"] == "Upstream 503 Service Unavailable"


def test_generic_exception_production(build_client):
    client = build_client("production")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" not in body["error"]
    assert "secret=should_not_leak" not in str(body)


def test_generic_exception_development(build_client):
    client = build_client("development")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" in body["error"]


def test_http_exception_keeps_status(build_client):
    client = build_client("development")
    resp = client.get("/teapot")
    assert resp.status_code == 418
    body = resp.json()
    assert body["error"]["type"] == "http_error"
    assert body["error"]["details"]["detail"] == "Short and stout"


def test_unknown_route_is_normalized(build_client):
    client = build_client("production")
    resp = client.get("/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["correlation_id"]
    assert "details" not in body["error"]


def test_correlation_id_is_echoed(build_client):
    client = build_client("production")
    resp = client.post(
        "/probe",
        json={"model": "llama3.2", "attempts": 1},
        headers={CORRELATION_HEADER: "abc-123"},
    )
    assert resp.status_code == 200
    assert resp.headers[CORRELATION_HEADER] == "abc-123"
