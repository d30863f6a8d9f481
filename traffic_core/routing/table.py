"""
Route Table
===========
Registered routes grouped by matching key, with path pattern matching.

Patterns support:
- exact paths (``/v1/orders``)
- ``*`` wildcards (``/static/*``)
- ``:param`` segments (``/v1/orders/:id``)

A method of ``*`` matches any request method.
"""

import re
from functools import lru_cache
from typing import Dict, List, Optional

from ..exceptions import ConfigurationError
from .models import Route


@lru_cache(maxsize=1024)
def _wildcard_regex(pattern: str) -> "re.Pattern[str]":
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


def path_matches(pattern: str, path: str) -> bool:
    """Check if a request path matches a route pattern."""
    if pattern == path:
        return True

    if "*" in pattern:
        return _wildcard_regex(pattern).match(path) is not None

    if ":" in pattern:
        pattern_parts = pattern.split("/")
        path_parts = path.split("/")
        if len(pattern_parts) != len(path_parts):
            return False
        return all(
            p.startswith(":") or p == segment
            for p, segment in zip(pattern_parts, path_parts)
        )

    return False


def method_matches(route: Route, method: str) -> bool:
    methods = route.methods
    return "*" in methods or method.upper() in methods


class RouteTable:
    """Routes indexed by id and grouped by ``(methods, path)`` key."""

    def __init__(self):
        self._groups: Dict[str, List[Route]] = {}
        self._by_id: Dict[str, Route] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, route_id: str) -> bool:
        return route_id in self._by_id

    def add(self, route: Route) -> None:
        if not route.id:
            raise ConfigurationError("Route id must be set before adding to the table")
        if route.id in self._by_id:
            raise ConfigurationError(f"Route '{route.id}' is already registered")
        self._groups.setdefault(route.key, []).append(route)
        self._by_id[route.id] = route

    def remove(self, route_id: str) -> Optional[Route]:
        route = self._by_id.pop(route_id, None)
        if route is None:
            return None

        group = self._groups[route.key]
        group.remove(route)
        if not group:
            del self._groups[route.key]
        return route

    def get(self, route_id: str) -> Optional[Route]:
        return self._by_id.get(route_id)

    def routes(self) -> List[Route]:
        return [route for group in self._groups.values() for route in group]

    def by_service(self, service: str) -> List[Route]:
        return [route for route in self.routes() if route.service == service]

    def match(self, method: str, path: str) -> List[Route]:
        """
        Find the candidate group for a request.

        Exact paths win over patterns; among patterns the first group
        registered wins.

        Returns:
            Candidate routes (disabled ones included), empty if none match
        """
        for group in self._groups.values():
            head = group[0]
            if head.path == path and method_matches(head, method):
                return list(group)

        for group in self._groups.values():
            head = group[0]
            if method_matches(head, method) and path_matches(head.path, path):
                return list(group)

        return []
