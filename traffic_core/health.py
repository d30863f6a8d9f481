"""
Health Check Router
===================
Health endpoints reporting per-route circuit breaker state.
"""

import time
from enum import Enum
from typing import Dict, Optional, Any

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel

from .circuit_breaker import CircuitState
from .controller import TrafficController

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class RouteHealth(BaseModel):
    state: CircuitState
    consecutive_failures: int
    service: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    version: str
    routes: Dict[str, RouteHealth]
    timestamp: float


def overall_status(routes: Dict[str, RouteHealth]) -> HealthStatus:
    """Healthy when no circuit is open, unhealthy when every circuit is."""
    if not routes:
        return HealthStatus.HEALTHY
    not_closed = [r for r in routes.values() if r.state != CircuitState.CLOSED]
    open_count = sum(1 for r in routes.values() if r.state == CircuitState.OPEN)
    if open_count == len(routes):
        return HealthStatus.UNHEALTHY
    if not_closed:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def create_health_router(
    controller: TrafficController,
    service_name: str,
    version: str = "1.0.0",
) -> APIRouter:
    """
    Create a health check router for a traffic controller.

    Args:
        controller: Controller whose breakers are reported
        service_name: Name of the gateway service
        version: Service version

    Returns:
        FastAPI router with /health, /health/live, /health/ready and
        /health/breakers endpoints
    """
    router = APIRouter(tags=["Health"])

    def collect() -> Dict[str, RouteHealth]:
        routes: Dict[str, RouteHealth] = {}
        for route in controller.get_routes():
            snapshot = controller.get_breaker_state(route.id)
            routes[route.id] = RouteHealth(
                state=snapshot.state,
                consecutive_failures=snapshot.consecutive_failures,
                service=route.service or None,
            )
        return routes

    @router.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health with the breaker state of every route."""
        routes = collect()
        return HealthResponse(
            status=overall_status(routes),
            service=service_name,
            version=version,
            routes=routes,
            timestamp=time.time(),
        )

    @router.get("/health/live")
    async def liveness_probe():
        """Liveness probe - always returns 200 if service is running."""
        return {"status": "alive"}

    @router.get("/health/ready")
    async def readiness_probe():
        """Readiness probe - 503 when every route's circuit is open."""
        if overall_status(collect()) == HealthStatus.UNHEALTHY:
            logger.warning("gateway_not_ready", service=service_name)
            return Response(
                content='{"status": "not_ready", "reason": "all_circuits_open"}',
                status_code=503,
                media_type="application/json",
            )
        return {"status": "ready"}

    @router.get("/health/breakers")
    async def breakers() -> Dict[str, Any]:
        """Breaker summary and per-route metrics."""
        return {
            "summary": controller.breaker_summary(),
            "breakers": controller.breaker_metrics(),
        }

    return router
