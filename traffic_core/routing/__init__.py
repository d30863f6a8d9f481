"""
Routing
=======
Route definitions, path matching and weighted selection.
"""

from .models import Route, RouteTarget
from .table import RouteTable, path_matches, method_matches
from .selector import WeightedRouteSelector, effective_weight

__all__ = [
    "Route",
    "RouteTarget",
    "RouteTable",
    "path_matches",
    "method_matches",
    "WeightedRouteSelector",
    "effective_weight",
]
