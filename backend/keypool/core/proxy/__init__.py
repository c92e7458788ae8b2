"""
Proxy module initialization.
"""
from .upstream import RequestForwarder, UpstreamResponse, parse_model_path

__all__ = [
    "RequestForwarder",
    "UpstreamResponse",
    "parse_model_path",
]
