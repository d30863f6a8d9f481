"""
Routing Models
==============
Route definitions registered with the traffic controller.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union, Dict, Any


@dataclass(frozen=True)
class RouteTarget:
    """Upstream a route forwards to."""
    host: str
    port: int = 80
    protocol: str = "http"
    endpoint: str = "/"
    service: str = ""

    @property
    def url(self) -> str:
        endpoint = self.endpoint if self.endpoint.startswith("/") else f"/{self.endpoint}"
        return f"{self.protocol}://{self.host}:{self.port}{endpoint}"


@dataclass(frozen=True)
class Route:
    """
    A weighted route target for a path pattern and method.

    Routes sharing the same ``method`` and ``path`` form one candidate
    group; ``weight`` only matters inside that group.
    """
    path: str
    target: RouteTarget
    method: Union[str, Tuple[str, ...]] = "GET"
    id: str = ""
    weight: int = 1
    enabled: bool = True
    version: Optional[str] = None
    deprecated: bool = False
    timeout: Optional[float] = None   # Overrides the default call timeout
    retries: Optional[int] = None     # Overrides the default retry count
    excluded_exceptions: Optional[tuple] = None  # Overrides the default exclusions
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def methods(self) -> Tuple[str, ...]:
        if isinstance(self.method, str):
            return (self.method.upper(),)
        return tuple(m.upper() for m in self.method)

    @property
    def key(self) -> str:
        """Matching key shared by all routes of a candidate group."""
        return f"{','.join(self.methods)}:{self.path}"

    @property
    def service(self) -> str:
        return self.target.service
