"""
API Routes Module

Exposes all route modules for registration in main app.
"""
from . import routes_keys
from . import routes_proxy

__all__ = ["routes_keys", "routes_proxy"]
