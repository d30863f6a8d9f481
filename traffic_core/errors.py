"""
HTTP Error Mapping
==================
Translate traffic errors into JSON responses for FastAPI / Starlette apps
and build TrafficRequests from incoming ASGI requests.

Usage:
    from fastapi import FastAPI
    from traffic_core.errors import register_exception_handlers, request_from_starlette

    app = FastAPI()
    register_exception_handlers(app)

    @app.api_route("/api/{path:path}", methods=["GET", "POST"])
    async def proxy(request: Request):
        upstream = await controller.handle(await request_from_starlette(request))
        return JSONResponse(upstream.data, status_code=upstream.status_code)
"""

import math
from typing import Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from .exceptions import TrafficError
from .models import TrafficRequest

logger = structlog.get_logger(__name__)

ERROR_TITLES: Dict[int, str] = {
    404: "Not found",
    429: "Too many requests",
    500: "Internal error",
    502: "Bad gateway",
    503: "Service temporarily unavailable",
    504: "Gateway timeout",
}


def error_payload(exc: TrafficError) -> Dict[str, str]:
    """JSON body for a traffic error. Upstream details are never included."""
    return {
        "error": ERROR_TITLES.get(exc.status_code, "Request failed"),
        "message": exc.message,
        "code": exc.code,
    }


def error_headers(exc: TrafficError) -> Optional[Dict[str, str]]:
    """``Retry-After`` header for errors that carry a retry delay."""
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is None:
        return None
    return {"Retry-After": str(max(1, math.ceil(retry_after)))}


def to_http_exception(exc: TrafficError) -> HTTPException:
    """Convert a traffic error into a FastAPI HTTPException."""
    return HTTPException(
        status_code=exc.status_code,
        detail=error_payload(exc),
        headers=error_headers(exc),
    )


async def traffic_error_handler(request: Request, exc: TrafficError) -> JSONResponse:
    """Exception handler returning the JSON error body."""
    if exc.status_code >= 500:
        logger.warning(
            "traffic_request_failed",
            code=exc.code,
            status=exc.status_code,
            path=request.url.path,
            error=str(exc),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc),
        headers=error_headers(exc),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the traffic error handler on an application."""
    app.add_exception_handler(TrafficError, traffic_error_handler)


async def request_from_starlette(request: Request) -> TrafficRequest:
    """Build a TrafficRequest from a Starlette request."""
    body = await request.body()
    return TrafficRequest(
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        headers=dict(request.headers),
        query=dict(request.query_params),
        body=body or None,
        api_key=request.headers.get("x-api-key"),
    )
