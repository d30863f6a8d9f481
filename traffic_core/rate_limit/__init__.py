"""
Rate Limiting
=============
Fixed-window per-client admission control.
"""

from .models import RateLimitResult, RateLimitInfo, RateWindowEntry
from .window import RateWindow
from .keys import build_rate_limit_key, hash_key

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    "RateWindowEntry",
    # Limiter
    "RateWindow",
    # Keys
    "build_rate_limit_key",
    "hash_key",
]
