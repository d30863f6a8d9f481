"""
Request Model
=============
Transport-neutral view of an incoming request.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any


@dataclass
class TrafficRequest:
    """An incoming request as seen by the traffic controller."""
    method: str
    path: str
    client_ip: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    user_id: Optional[str] = None
    api_key: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.method = self.method.upper()
