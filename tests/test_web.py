"""
Web Integration Tests
=====================
Exception handlers, request conversion and health endpoints on FastAPI.
"""

import asyncio

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from traffic_core import (
    BadGatewayError,
    CircuitState,
    RateLimitedError,
    Route,
    RouteTarget,
    ServiceUnavailableError,
    TrafficConfig,
    TrafficController,
    TrafficRequest,
)
from traffic_core.errors import (
    error_headers,
    register_exception_handlers,
    request_from_starlette,
    to_http_exception,
)
from traffic_core.health import HealthStatus, RouteHealth, create_health_router, overall_status


def make_route(route_id, path="/api/orders"):
    return Route(
        path=path,
        target=RouteTarget(host=f"{route_id}.internal", service="orders"),
        method="*",
        id=route_id,
    )


def make_app(controller):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(create_health_router(controller, "edge-gateway", "1.2.3"))

    @app.api_route("/api/{path:path}", methods=["GET", "POST"])
    async def proxy(request: Request):
        return await controller.handle(await request_from_starlette(request))

    return app


class TestErrorMapping:
    """Tests for converting traffic errors to HTTP."""

    def test_retry_after_rounded_up(self):
        assert error_headers(RateLimitedError("k", retry_after=2.2)) == {"Retry-After": "3"}
        assert error_headers(RateLimitedError("k", retry_after=0.0)) == {"Retry-After": "1"}
        assert error_headers(BadGatewayError("down")) is None

    def test_to_http_exception(self):
        exc = to_http_exception(ServiceUnavailableError("open", retry_after=5))

        assert exc.status_code == 503
        assert exc.detail["code"] == "SERVICE_UNAVAILABLE"
        assert exc.headers == {"Retry-After": "5"}

    def test_handler_returns_json(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/limited")
        async def limited():
            raise RateLimitedError("rl:1.2.3.4", retry_after=2.5)

        response = TestClient(app).get("/limited")

        assert response.status_code == 429
        assert response.headers["retry-after"] == "3"
        assert response.json() == {
            "error": "Too many requests",
            "message": "Rate limit exceeded for 'rl:1.2.3.4'",
            "code": "RATE_LIMITED",
        }


class TestProxy:
    """End-to-end requests through a FastAPI app."""

    def test_request_converted(self):
        seen = []

        async def invoker(route, request: TrafficRequest):
            seen.append(request)
            return {"route": route.id}

        controller = TrafficController(invoker, config=TrafficConfig(default_retries=0))
        controller.register_route(make_route("a"))
        client = TestClient(make_app(controller))

        response = client.post(
            "/api/orders?expand=lines",
            content=b"{}",
            headers={"x-api-key": "sk_test"},
        )

        assert response.status_code == 200
        assert response.json() == {"route": "a"}
        request = seen[0]
        assert request.method == "POST"
        assert request.path == "/api/orders"
        assert request.query == {"expand": "lines"}
        assert request.api_key == "sk_test"
        assert request.body == b"{}"

    def test_unknown_route_is_404(self):
        async def invoker(route, request):
            return {}

        client = TestClient(make_app(TrafficController(invoker)))

        response = client.get("/api/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "ROUTE_NOT_FOUND"

    def test_upstream_failure_is_502(self):
        async def invoker(route, request):
            raise ConnectionError("refused")

        controller = TrafficController(invoker, config=TrafficConfig(default_retries=0))
        controller.register_route(make_route("a"))
        client = TestClient(make_app(controller))

        response = client.get("/api/orders")

        assert response.status_code == 502
        assert "refused" not in response.text


class TestHealth:
    """Tests for health endpoints."""

    @pytest.mark.parametrize(
        "states,expected",
        [
            ([], HealthStatus.HEALTHY),
            ([CircuitState.CLOSED, CircuitState.CLOSED], HealthStatus.HEALTHY),
            ([CircuitState.CLOSED, CircuitState.OPEN], HealthStatus.DEGRADED),
            ([CircuitState.HALF_OPEN], HealthStatus.DEGRADED),
            ([CircuitState.OPEN, CircuitState.OPEN], HealthStatus.UNHEALTHY),
        ],
    )
    def test_overall_status(self, states, expected):
        routes = {
            str(i): RouteHealth(state=state, consecutive_failures=0)
            for i, state in enumerate(states)
        }

        assert overall_status(routes) == expected

    def test_package_exports(self):
        import traffic_core

        assert traffic_core.create_health_router is create_health_router
        assert traffic_core.register_exception_handlers is register_exception_handlers
        assert traffic_core.request_from_starlette is request_from_starlette

    def test_health_reports_routes(self):
        async def invoker(route, request):
            return {}

        controller = TrafficController(invoker)
        controller.register_route(make_route("a"))
        client = TestClient(make_app(controller))

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["service"] == "edge-gateway"
        assert body["version"] == "1.2.3"
        assert body["routes"]["a"]["state"] == "closed"
        assert client.get("/health/live").json() == {"status": "alive"}
        assert client.get("/health/ready").status_code == 200

    def test_not_ready_when_all_circuits_open(self):
        async def invoker(route, request):
            raise ConnectionError("refused")

        controller = TrafficController(
            invoker,
            config=TrafficConfig(default_retries=0, failure_threshold=1),
        )
        controller.register_route(make_route("a"))

        with pytest.raises(BadGatewayError):
            asyncio.run(controller.handle(TrafficRequest("GET", "/api/orders")))

        client = TestClient(make_app(controller))

        assert client.get("/health").json()["status"] == "unhealthy"
        assert client.get("/health/ready").status_code == 503

        breakers = client.get("/health/breakers").json()
        assert breakers["summary"]["open_circuits"] == 1
        assert breakers["breakers"]["a"]["state"] == "open"
