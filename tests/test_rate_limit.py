"""
Rate Limiting Tests
===================
Fixed-window counting, sweeping and key derivation.
"""

import pytest

from traffic_core.exceptions import ConfigurationError
from traffic_core.models import TrafficRequest
from traffic_core.rate_limit import RateWindow, RateLimitResult, build_rate_limit_key, hash_key


class TestRateWindow:
    """Tests for the fixed-window limiter."""

    def test_limit_within_window(self, clock):
        """Exactly `limit` calls pass, the next fails, a new window passes again."""
        limiter = RateWindow(limit=3, window=1.0, clock=clock)

        assert [limiter.allow("10.0.0.1") for _ in range(3)] == [True, True, True]
        assert limiter.allow("10.0.0.1") is False

        clock.advance(1.0)
        assert limiter.allow("10.0.0.1") is True

    def test_separate_keys(self, clock):
        """Different keys should have separate limits."""
        limiter = RateWindow(limit=2, window=60, clock=clock)

        limiter.allow("user1")
        limiter.allow("user1")

        assert limiter.allow("user1") is False
        assert limiter.allow("user2") is True

    def test_rejected_calls_still_counted(self, clock):
        """Every call that reached the check is reflected in the counter."""
        limiter = RateWindow(limit=2, window=60, clock=clock)

        for _ in range(5):
            limiter.allow("k")

        assert limiter.get("k").count == 5

    def test_non_positive_limit_always_denies(self, clock):
        limiter = RateWindow(limit=10, window=60, clock=clock)

        assert limiter.allow("k", limit=0) is False
        assert limiter.allow("k", limit=-1) is False
        assert "k" not in limiter

    def test_invalid_window_fails_fast(self, clock):
        with pytest.raises(ConfigurationError):
            RateWindow(limit=10, window=0, clock=clock)

        limiter = RateWindow(limit=10, window=60, clock=clock)
        with pytest.raises(ConfigurationError):
            limiter.allow("k", window=-5)

    def test_check_reports_quota(self, clock):
        """check() returns remaining quota and retry_after once blocked."""
        limiter = RateWindow(limit=2, window=10, clock=clock)

        first = limiter.check("k")
        assert first.allowed is True
        assert first.remaining == 1
        assert first.result == RateLimitResult.ALLOWED

        clock.advance(4)
        second = limiter.check("k")
        assert second.remaining == 0

        blocked = limiter.check("k")
        assert blocked.allowed is False
        assert blocked.result == RateLimitResult.BLOCKED
        assert blocked.retry_after == pytest.approx(6.0)

    def test_sweep_evicts_idle_entries(self, clock):
        """Entries idle for `idle_windows` windows are removed."""
        limiter = RateWindow(limit=5, window=10, clock=clock, idle_windows=2)

        limiter.allow("old")
        clock.advance(15)
        limiter.allow("recent")

        removed = limiter.sweep(now=clock.now + 5)

        assert removed == 1
        assert "old" not in limiter
        assert "recent" in limiter

    def test_sweep_defaults_to_clock(self, clock):
        limiter = RateWindow(limit=5, window=1, clock=clock)
        limiter.allow("a")
        limiter.allow("b")

        clock.advance(2)

        assert limiter.sweep() == 2
        assert len(limiter) == 0

    def test_sweep_respects_per_call_window(self, clock):
        """An entry counted under a longer window survives sweeps of the default one."""
        limiter = RateWindow(limit=100, window=1.0, clock=clock)

        for _ in range(3):
            assert limiter.allow("k", limit=3, window=100.0) is True
        assert limiter.allow("k", limit=3, window=100.0) is False

        clock.advance(5)
        assert limiter.sweep() == 0
        assert limiter.allow("k", limit=3, window=100.0) is False
        assert limiter.get("k").window == 100.0

        clock.advance(200)
        assert limiter.sweep() == 1

    def test_sweep_mixed_windows(self, clock):
        """Idle short-window entries are evicted behind a live long-window one."""
        limiter = RateWindow(limit=5, window=1.0, clock=clock)

        limiter.allow("long", window=50.0)
        clock.advance(1)
        limiter.allow("short")

        clock.advance(3)

        assert limiter.sweep() == 1
        assert "long" in limiter
        assert "short" not in limiter

    def test_max_keys_bounds_memory(self, clock):
        """Oldest windows are evicted once max_keys is reached."""
        limiter = RateWindow(limit=5, window=60, clock=clock, max_keys=2)

        limiter.allow("a")
        clock.advance(1)
        limiter.allow("b")
        clock.advance(1)
        limiter.allow("c")

        assert len(limiter) == 2
        assert "a" not in limiter
        assert "c" in limiter

    def test_reset(self, clock):
        limiter = RateWindow(limit=1, window=60, clock=clock)
        limiter.allow("a")
        limiter.allow("b")

        limiter.reset("a")
        assert limiter.allow("a") is True

        limiter.reset()
        assert len(limiter) == 0


class TestRateLimitKeys:
    """Tests for key strategies."""

    def test_ip_strategy(self):
        request = TrafficRequest(method="GET", path="/", client_ip="192.168.1.4")

        assert build_rate_limit_key(request) == "rl:192.168.1.4"
        assert build_rate_limit_key(TrafficRequest("GET", "/")) == "rl:unknown-ip"

    def test_user_strategy(self):
        request = TrafficRequest(method="GET", path="/", user_id="u_42")

        assert build_rate_limit_key(request, strategy="user", prefix="api") == "api:u_42"

    def test_api_key_strategy_hashes_key(self):
        """Raw API keys never appear in the key."""
        request = TrafficRequest(method="GET", path="/", api_key="sk_live_secret")

        key = build_rate_limit_key(request, strategy="api_key")

        assert "sk_live_secret" not in key
        assert key == f"rl:{hash_key('sk_live_secret')}"
        assert build_rate_limit_key(TrafficRequest("GET", "/"), strategy="api_key") == "rl:unknown-key"

    def test_custom_strategy(self):
        request = TrafficRequest(method="GET", path="/", headers={"x-tenant": "acme"})

        key = build_rate_limit_key(
            request,
            strategy="custom",
            custom_key_fn=lambda r: r.headers.get("x-tenant"),
        )

        assert key == "rl:acme"
        assert build_rate_limit_key(request, strategy="custom") == "rl:custom-unknown"
