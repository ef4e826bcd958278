"""Tests for the response hardening middleware."""

from __future__ import annotations

import pytest
from fastapi import Response
from fastapi.testclient import TestClient

from myride.core import middleware as middleware_module
from myride.core.app_factory import create_app
from myride.core.middleware import SECURITY_HEADERS


@pytest.fixture
def client() -> TestClient:
    app = create_app()

    @app.get("/framed")
    async def framed(response: Response) -> dict:
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        return {"ok": True}

    return TestClient(app)


def test_every_security_header_is_set(client: TestClient) -> None:
    response = client.get("/health")

    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


def test_csp_allows_stripe_only(client: TestClient) -> None:
    csp = client.get("/health").headers["Content-Security-Policy"]

    assert "script-src 'self' 'unsafe-inline' https://js.stripe.com" in csp
    assert "connect-src 'self' https://api.stripe.com" in csp
    assert "frame-src https://js.stripe.com https://hooks.stripe.com" in csp


def test_route_supplied_header_is_not_overridden(client: TestClient) -> None:
    response = client.get("/framed")

    assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_headers_can_be_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(middleware_module.settings.app, "security_headers_enabled", False)

    response = client.get("/health")

    assert "Content-Security-Policy" not in response.headers
    assert "X-Frame-Options" not in response.headers


def test_unhandled_error_response_is_hardened_and_correlated() -> None:
    app = create_app()

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("database connection failed")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/boom", headers={"X-Request-ID": "r1"})

    assert response.status_code == 500
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value
    assert response.headers["X-Request-ID"] == "r1"
    assert response.json()["error"]["request_id"] == "r1"


def test_unhandled_error_gets_generated_request_id() -> None:
    app = create_app()

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("database connection failed")

    response = TestClient(app, raise_server_exceptions=False).get("/boom")

    request_id = response.json()["error"]["request_id"]
    assert request_id
    assert response.headers["X-Request-ID"] == request_id
