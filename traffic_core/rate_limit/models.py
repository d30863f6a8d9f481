"""
Rate Limit Models
=================
Data models for fixed-window rate limiting.
"""

from typing import Optional
from dataclasses import dataclass
from enum import Enum


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass
class RateWindowEntry:
    """Request counter for one client key in the current window."""
    count: int
    window_start: float  # Monotonic timestamp the window began
    window: float        # Longest window size the entry was counted under

    def idle_since(self, now: float) -> float:
        """Seconds since the entry's window began."""
        return now - self.window_start


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # Monotonic timestamp the current window ends
    retry_after: Optional[float] = None  # Seconds until retry allowed

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
