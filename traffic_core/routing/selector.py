"""
Weighted Route Selection
========================
Pick one route among a candidate group proportionally to its weight.
"""

import random
from typing import Optional, Sequence

from ..exceptions import NoRouteAvailableError
from .models import Route


def effective_weight(route: Route) -> int:
    """Weight used for selection. Unset or non-positive weights count as 1."""
    weight = route.weight
    if not weight or weight <= 0:
        return 1
    return weight


class WeightedRouteSelector:
    """
    Weighted random selection among enabled routes.

    Pass a seeded ``random.Random`` to make selection deterministic.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def pick(self, routes: Sequence[Route]) -> Route:
        """
        Choose one enabled route.

        Raises:
            NoRouteAvailableError: If no candidate is enabled
        """
        enabled = [route for route in routes if route.enabled]
        if not enabled:
            raise NoRouteAvailableError("No enabled route available for this request")
        if len(enabled) == 1:
            return enabled[0]

        total = sum(effective_weight(route) for route in enabled)
        remainder = self._rng.random() * total

        for route in enabled:
            remainder -= effective_weight(route)
            if remainder < 0:
                return route

        # Float rounding can leave a zero remainder after the last route
        return enabled[-1]
