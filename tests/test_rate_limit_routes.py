"""Tests for the rate limit dependency on protected routes.

Routes under test are built inline: the dependency must reject throttled
requests before the route body (database, payment provider) runs.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from myride.core import rate_limit as rate_limit_module
from myride.core.app_factory import create_app
from myride.core.errors import RateLimitExceededError
from myride.core.rate_limit import (
    RATE_LIMITED_RESPONSES,
    RateLimiterRegistry,
    build_rate_limiters,
    rate_limit,
)
from myride.services.admission import AdmissionPolicy, QuotaConfig


@pytest.fixture
def side_effects() -> list[str]:
    return []


@pytest.fixture
def app(clock: Mock, side_effects: list[str]) -> FastAPI:
    registry = RateLimiterRegistry(
        [
            AdmissionPolicy(QuotaConfig(name="payment", window_ms=900_000, max_requests=2), clock=clock),
            AdmissionPolicy(QuotaConfig(name="general", window_ms=900_000, max_requests=5), clock=clock),
        ]
    )
    app = create_app(rate_limiters=registry)

    @app.post(
        "/api/create-premium-payment",
        dependencies=[Depends(rate_limit("payment"))],
        responses=RATE_LIMITED_RESPONSES,
    )
    async def create_premium_payment() -> dict:
        side_effects.append("checkout_session_created")
        return {"sessionId": "cs_test_123"}

    @app.get("/api/events", dependencies=[Depends(rate_limit("general"))])
    async def list_events() -> dict:
        side_effects.append("events_listed")
        return {"events": []}

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _from(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


class TestRateLimitedRoutes:
    def test_requests_within_quota_reach_the_route(self, client: TestClient, side_effects: list[str]) -> None:
        for _ in range(2):
            response = client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))
            assert response.status_code == 200

        assert side_effects == ["checkout_session_created"] * 2

    def test_over_quota_returns_429_without_running_route(
        self, client: TestClient, clock: Mock, side_effects: list[str]
    ) -> None:
        client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))
        client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))

        clock.return_value = 1_000
        response = client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))

        assert response.status_code == 429
        assert response.json() == {"error": "Too many requests", "retryAfter": 899}
        assert response.headers["Retry-After"] == "899"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "900000"
        assert side_effects == ["checkout_session_created"] * 2

    def test_throttled_response_keeps_tracing_and_security_headers(self, client: TestClient) -> None:
        for _ in range(2):
            client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))

        response = client.post(
            "/api/create-premium-payment",
            headers={**_from("1.2.3.4"), "X-Request-ID": "req-429"},
        )

        assert response.status_code == 429
        assert response.headers["X-Request-ID"] == "req-429"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_clients_are_isolated(self, client: TestClient) -> None:
        for _ in range(2):
            client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))

        assert client.post("/api/create-premium-payment", headers=_from("1.2.3.4")).status_code == 429
        assert client.post("/api/create-premium-payment", headers=_from("5.6.7.8")).status_code == 200

    def test_quotas_are_isolated(self, client: TestClient) -> None:
        for _ in range(2):
            client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))

        assert client.post("/api/create-premium-payment", headers=_from("1.2.3.4")).status_code == 429
        assert client.get("/api/events", headers=_from("1.2.3.4")).status_code == 200

    def test_quota_recovers_after_window(self, client: TestClient, clock: Mock) -> None:
        for _ in range(2):
            client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))
        assert client.post("/api/create-premium-payment", headers=_from("1.2.3.4")).status_code == 429

        clock.return_value = 900_000

        assert client.post("/api/create-premium-payment", headers=_from("1.2.3.4")).status_code == 200

    def test_disabled_rate_limit_admits_everything(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(rate_limit_module.settings.rate_limit, "enabled", False)

        for _ in range(5):
            response = client.post("/api/create-premium-payment", headers=_from("1.2.3.4"))
            assert response.status_code == 200

    def test_health_is_not_rate_limited(self, client: TestClient) -> None:
        for _ in range(10):
            assert client.get("/health", headers=_from("1.2.3.4")).status_code == 200

    def test_429_documented_in_openapi(self, client: TestClient) -> None:
        schema = client.get("/openapi.json").json()

        responses = schema["paths"]["/api/create-premium-payment"]["post"]["responses"]
        assert "429" in responses


class TestEnforceRateLimitDependency:
    @staticmethod
    def _request(app: FastAPI, ip: str) -> Request:
        return Request(
            {
                "type": "http",
                "method": "POST",
                "path": "/api/create-premium-payment",
                "headers": [(b"x-forwarded-for", ip.encode())],
                "app": app,
            }
        )

    @pytest.mark.asyncio
    async def test_raises_with_admission_result_on_denial(self, app: FastAPI) -> None:
        enforce = rate_limit("payment")

        await enforce(self._request(app, "9.9.9.9"))
        await enforce(self._request(app, "9.9.9.9"))

        with pytest.raises(RateLimitExceededError) as exc_info:
            await enforce(self._request(app, "9.9.9.9"))

        assert exc_info.value.code == "rate_limit_exceeded"
        assert exc_info.value.quota == "payment"
        assert exc_info.value.result.allowed is False
        assert exc_info.value.result.remaining == 0
        assert exc_info.value.result.key == "9.9.9.9"

    @pytest.mark.asyncio
    async def test_unknown_quota_name_is_a_programming_error(self, app: FastAPI) -> None:
        enforce = rate_limit("does-not-exist")

        with pytest.raises(KeyError):
            await enforce(self._request(app, "9.9.9.9"))

    def test_dependency_name_mentions_quota(self) -> None:
        assert rate_limit("webhook").__name__ == "enforce_webhook_rate_limit"


class TestRegistry:
    def test_default_registry_has_all_presets(self) -> None:
        registry = build_rate_limiters()

        assert {"payment", "general", "webhook"} <= {p.config.name for p in registry}
        assert registry.get("payment").config.max_requests == 10
        assert registry.get("general").config.max_requests == 100
        assert registry.get("webhook").config.window_ms == 60_000

    def test_each_build_gets_fresh_ledgers(self) -> None:
        first = build_rate_limiters()
        second = build_rate_limiters()

        first.get("payment").check("k")

        assert len(first.get("payment").ledger) == 1
        assert len(second.get("payment").ledger) == 0

    def test_duplicate_names_rejected(self) -> None:
        quota = QuotaConfig(name="payment", window_ms=1_000, max_requests=1)

        with pytest.raises(ValueError):
            RateLimiterRegistry([AdmissionPolicy(quota), AdmissionPolicy(quota)])

    def test_reset_clears_every_policy(self) -> None:
        registry = build_rate_limiters()
        for policy in registry:
            policy.check("k")

        registry.reset()

        assert all(len(policy.ledger) == 0 for policy in registry)

    def test_create_app_installs_default_registry(self) -> None:
        app = create_app()

        assert "payment" in app.state.rate_limiters
        assert "webhook" in app.state.rate_limiters
