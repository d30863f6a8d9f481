"""
Rate Limit Keys
===============
Derive the client key a request is counted against.
"""

import hashlib
from typing import Callable, Optional

from ..models import TrafficRequest


def hash_key(value: str) -> str:
    """Hash an API key so raw credentials never become map keys."""
    return "key_" + hashlib.sha256(value.encode()).hexdigest()[:16]


def build_rate_limit_key(
    request: TrafficRequest,
    strategy: str = "ip",
    prefix: str = "rl",
    custom_key_fn: Optional[Callable[[TrafficRequest], Optional[str]]] = None,
) -> str:
    """
    Build the rate limit key for a request.

    Args:
        request: Incoming request
        strategy: One of ``ip``, ``user``, ``api_key`` or ``custom``
        prefix: Key prefix
        custom_key_fn: Identifier function used by the ``custom`` strategy

    Returns:
        Key in the form ``<prefix>:<identifier>``
    """
    if strategy == "ip":
        identifier = request.client_ip or "unknown-ip"
    elif strategy == "user":
        identifier = request.user_id or "unknown-user"
    elif strategy == "api_key":
        identifier = hash_key(request.api_key) if request.api_key else "unknown-key"
    elif strategy == "custom":
        identifier = (custom_key_fn(request) if custom_key_fn else None) or "custom-unknown"
    else:
        identifier = request.client_ip or "unknown"

    return f"{prefix}:{identifier}"
