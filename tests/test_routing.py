"""
Routing Tests
=============
Path matching, the route table and weighted selection.
"""

import random

import pytest

from traffic_core.exceptions import ConfigurationError, NoRouteAvailableError
from traffic_core.routing import (
    Route,
    RouteTable,
    RouteTarget,
    WeightedRouteSelector,
    effective_weight,
    path_matches,
)


def make_route(route_id, path="/v1/orders", method="GET", weight=1, enabled=True, service="orders"):
    return Route(
        path=path,
        target=RouteTarget(host=f"{route_id}.internal", port=8000, service=service),
        method=method,
        id=route_id,
        weight=weight,
        enabled=enabled,
    )


class ExplodingRandom(random.Random):
    def random(self):
        raise AssertionError("random() should not be called")


class TestPathMatching:
    """Tests for path pattern matching."""

    @pytest.mark.parametrize(
        "pattern,path,expected",
        [
            ("/v1/orders", "/v1/orders", True),
            ("/v1/orders", "/v1/orders/1", False),
            ("/static/*", "/static/css/app.css", True),
            ("/static/*", "/assets/app.css", False),
            ("/v1/*/items", "/v1/carts/items", True),
            ("/v1/orders/:id", "/v1/orders/42", True),
            ("/v1/orders/:id", "/v1/orders/42/lines", False),
            ("/v1/:kind/:id", "/v1/orders/42", True),
            ("/v1/orders.json", "/v1/ordersXjson", False),
        ],
    )
    def test_path_matches(self, pattern, path, expected):
        assert path_matches(pattern, path) is expected


class TestRouteTable:
    """Tests for route grouping and lookup."""

    def test_routes_with_same_key_form_one_group(self):
        table = RouteTable()
        table.add(make_route("a"))
        table.add(make_route("b"))
        table.add(make_route("c", method="POST"))

        assert [r.id for r in table.match("GET", "/v1/orders")] == ["a", "b"]
        assert [r.id for r in table.match("post", "/v1/orders")] == ["c"]

    def test_exact_path_wins_over_pattern(self):
        table = RouteTable()
        table.add(make_route("pattern", path="/v1/orders/:id"))
        table.add(make_route("exact", path="/v1/orders/special"))

        assert [r.id for r in table.match("GET", "/v1/orders/special")] == ["exact"]
        assert [r.id for r in table.match("GET", "/v1/orders/7")] == ["pattern"]

    def test_wildcard_method(self):
        table = RouteTable()
        table.add(make_route("any", method="*"))

        assert [r.id for r in table.match("DELETE", "/v1/orders")] == ["any"]

    def test_multiple_methods(self):
        table = RouteTable()
        table.add(make_route("rw", method=("get", "put")))

        assert table.match("PUT", "/v1/orders")
        assert table.match("POST", "/v1/orders") == []

    def test_no_match(self):
        assert RouteTable().match("GET", "/missing") == []

    def test_duplicate_and_missing_ids_rejected(self):
        table = RouteTable()
        table.add(make_route("a"))

        with pytest.raises(ConfigurationError):
            table.add(make_route("a"))
        with pytest.raises(ConfigurationError):
            table.add(make_route(""))

    def test_remove(self):
        table = RouteTable()
        table.add(make_route("a"))

        assert table.remove("a").id == "a"
        assert table.remove("a") is None
        assert table.match("GET", "/v1/orders") == []
        assert len(table) == 0

    def test_by_service(self):
        table = RouteTable()
        table.add(make_route("a", service="orders"))
        table.add(make_route("b", path="/v1/users", service="users"))

        assert [r.id for r in table.by_service("users")] == ["b"]


class TestWeightedRouteSelector:
    """Tests for weighted random selection."""

    def test_single_candidate_skips_draw(self):
        selector = WeightedRouteSelector(rng=ExplodingRandom())

        assert selector.pick([make_route("a")]).id == "a"

    def test_disabled_routes_skipped(self):
        selector = WeightedRouteSelector(rng=ExplodingRandom())
        routes = [make_route("a", enabled=False), make_route("b")]

        assert selector.pick(routes).id == "b"

    def test_all_disabled(self):
        selector = WeightedRouteSelector()

        with pytest.raises(NoRouteAvailableError):
            selector.pick([make_route("a", enabled=False)])
        with pytest.raises(NoRouteAvailableError):
            selector.pick([])

    def test_distribution_follows_weights(self):
        """Weights [1, 3] select the second route about 75% of the time."""
        selector = WeightedRouteSelector(rng=random.Random(42))
        routes = [make_route("light", weight=1), make_route("heavy", weight=3)]

        picks = [selector.pick(routes).id for _ in range(10000)]

        assert 0.72 <= picks.count("heavy") / len(picks) <= 0.78

    def test_seeded_selection_is_deterministic(self):
        routes = [make_route("a", weight=2), make_route("b", weight=5), make_route("c")]
        first = WeightedRouteSelector(rng=random.Random(7))
        second = WeightedRouteSelector(rng=random.Random(7))

        assert [first.pick(routes).id for _ in range(50)] == [
            second.pick(routes).id for _ in range(50)
        ]

    @pytest.mark.parametrize("weight", [0, -3])
    def test_non_positive_weight_counts_as_one(self, weight):
        assert effective_weight(make_route("a", weight=weight)) == 1
