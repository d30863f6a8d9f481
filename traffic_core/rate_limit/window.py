"""
Fixed Window Rate Limiter
=========================
In-memory fixed-window request counter per client key.
"""

import time
from collections import OrderedDict
from typing import Callable, Optional
import structlog

from ..exceptions import ConfigurationError
from .models import RateLimitInfo, RateWindowEntry

logger = structlog.get_logger(__name__)


class RateWindow:
    """
    Fixed-window rate limiter keyed by client identifier.

    Entries are kept in window-start order. The key map is bounded by
    ``max_keys``; when full, idle entries are swept and then the oldest
    windows evicted.

    All bookkeeping is synchronous. Callers sharing one event loop need no
    locking.

    Example:
        limiter = RateWindow(limit=100, window=60)

        if not limiter.allow(client_ip):
            raise RateLimitedError(client_ip)
    """

    def __init__(
        self,
        limit: int = 100,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10000,
        idle_windows: int = 2,
    ):
        """
        Args:
            limit: Requests allowed per window
            window: Window size in seconds
            clock: Monotonic time source
            max_keys: Maximum number of tracked client keys
            idle_windows: Windows of inactivity after which sweep evicts a key
        """
        self.window = self._validate_window(window)
        if max_keys <= 0:
            raise ConfigurationError("max_keys must be positive")
        self.limit = limit
        self.max_keys = max_keys
        self.idle_windows = idle_windows
        self._clock = clock
        self._entries: "OrderedDict[str, RateWindowEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @staticmethod
    def _validate_window(window: float) -> float:
        if window is None or window <= 0:
            raise ConfigurationError("Rate limiter window must be a positive number")
        return window

    def allow(
        self,
        key: str,
        limit: Optional[int] = None,
        window: Optional[float] = None,
    ) -> bool:
        """Return True if the request identified by ``key`` is admitted."""
        return self.check(key, limit, window).allowed

    def check(
        self,
        key: str,
        limit: Optional[int] = None,
        window: Optional[float] = None,
    ) -> RateLimitInfo:
        """
        Count a request for ``key`` and return the decision with quota info.

        Args:
            key: Unique client identifier (e.g., IP, API key hash)
            limit: Override of the configured per-window limit
            window: Override of the configured window size in seconds

        Returns:
            RateLimitInfo with decision and quota

        Raises:
            ConfigurationError: If ``window`` is not positive
        """
        limit = self.limit if limit is None else limit
        window = self.window if window is None else self._validate_window(window)
        now = self._clock()

        if limit <= 0:
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=now + window,
                retry_after=window,
            )

        entry = self._entries.get(key)

        if entry is None or now - entry.window_start >= window:
            if entry is None:
                self._make_room(now)
            self._entries[key] = RateWindowEntry(count=1, window_start=now, window=window)
            self._entries.move_to_end(key)
            return RateLimitInfo(
                allowed=True,
                remaining=limit - 1,
                limit=limit,
                reset_at=now + window,
            )

        entry.count += 1
        entry.window = max(entry.window, window)
        reset_at = entry.window_start + window

        if entry.count <= limit:
            return RateLimitInfo(
                allowed=True,
                remaining=limit - entry.count,
                limit=limit,
                reset_at=reset_at,
            )

        return RateLimitInfo(
            allowed=False,
            remaining=0,
            limit=limit,
            reset_at=reset_at,
            retry_after=max(0.0, reset_at - now),
        )

    def get(self, key: str) -> Optional[RateWindowEntry]:
        """Return the entry tracked for ``key`` without counting a request."""
        return self._entries.get(key)

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict entries whose window has been idle for ``idle_windows`` windows.

        Idleness is measured against the window each entry was counted
        under, so entries using a longer per-call window outlive the
        configured one.

        Args:
            now: Timestamp to sweep against (defaults to the clock)

        Returns:
            Number of evicted entries
        """
        now = self._clock() if now is None else now
        expired = [
            key for key, entry in self._entries.items()
            if entry.idle_since(now) >= entry.window * self.idle_windows
        ]
        for key in expired:
            del self._entries[key]
        removed = len(expired)

        if removed:
            logger.debug("rate_window_swept", removed=removed, tracked=len(self._entries))
        return removed

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def _make_room(self, now: float) -> None:
        if len(self._entries) < self.max_keys:
            return
        self.sweep(now)
        evicted = 0
        while len(self._entries) >= self.max_keys:
            self._entries.popitem(last=False)
            evicted += 1
        if evicted:
            logger.warning("rate_window_evicted", evicted=evicted, max_keys=self.max_keys)
