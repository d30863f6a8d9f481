"""
HTTP Invoker
============
httpx based backend invoker forwarding requests to a route's target.
"""

from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from ..exceptions import UpstreamError, UpstreamTimeoutError
from ..models import TrafficRequest
from ..routing import Route

logger = structlog.get_logger(__name__)

# Headers that describe the client connection, not the forwarded request
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
})


class UpstreamResponse(BaseModel):
    """Response returned by an upstream service."""
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    data: Any = None


def clean_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Drop hop-by-hop headers before forwarding."""
    return {
        name: value for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    }


class HttpInvoker:
    """
    Async HTTP invoker for the traffic controller.

    Features:
    - Connection pooling (via httpx.AsyncClient).
    - Upstream errors mapped onto the traffic error taxonomy.
    - 4xx responses are returned, not raised; only transport errors and
      5xx responses count against a route's circuit breaker.

    Example:
        async with HttpInvoker(timeout=5.0) as invoker:
            controller = TrafficController(invoker)
            response = await controller.handle(request)
    """

    def __init__(
        self,
        timeout: float = 10.0,
        verify_ssl: bool = True,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers=headers,
            verify=verify_ssl,
        )

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "HttpInvoker":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    def _map_exception(self, exc: httpx.HTTPError, route: Route) -> UpstreamError:
        """Map httpx exceptions to upstream errors."""
        if isinstance(exc, httpx.TimeoutException):
            return UpstreamTimeoutError("Request timed out", route_id=route.id)
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            return UpstreamError(
                f"Upstream returned HTTP {status}",
                route_id=route.id,
                details=exc.response.text,
            )
        if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
            return UpstreamError(f"Failed to connect: {exc}", route_id=route.id)
        return UpstreamError(f"Unexpected upstream error: {exc}", route_id=route.id)

    async def __call__(self, route: Route, request: TrafficRequest) -> UpstreamResponse:
        """Forward ``request`` to ``route.target``."""
        url = route.target.url

        try:
            response = await self.client.request(
                request.method,
                url,
                params=request.query or None,
                headers=clean_headers(request.headers),
                content=request.body,
            )
            if response.status_code >= 500:
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug("upstream_failed", route=route.id, url=url, error=str(e))
            raise self._map_exception(e, route) from e

        return UpstreamResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=_decode(response),
        )


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    if "application/json" in response.headers.get("content-type", ""):
        return response.json()
    return response.text
