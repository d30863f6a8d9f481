from .invoker import HttpInvoker, UpstreamResponse, clean_headers

__all__ = [
    "HttpInvoker",
    "UpstreamResponse",
    "clean_headers",
]
