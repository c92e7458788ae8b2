"""
Authentication

Shared-secret gate in front of every route.
"""
import logging
import secrets
from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from keypool.core.errors import AuthError, ConfigError

logger = logging.getLogger(__name__)

AUTH_HEADER = "x-goog-api-key"


def check_auth_header(provided: Optional[str], auth_key: Optional[str]):
    """
    Raise unless the provided header value matches the configured secret.

    Raises:
        ConfigError: No secret is configured.
        AuthError: Header missing or different.
    """
    if not auth_key:
        raise ConfigError("Internal Server Error - Auth Key Missing")
    if provided is None or not secrets.compare_digest(provided.encode(), auth_key.encode()):
        raise AuthError()


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Reject requests without the shared secret before any other work."""

    def __init__(
        self,
        app,
        auth_key: Optional[str],
        header_name: str = AUTH_HEADER,
        exempt_paths: Iterable[str] = ("/health",),
    ):
        super().__init__(app)
        self.auth_key = auth_key
        self.header_name = header_name
        self.exempt_paths = set(exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        try:
            check_auth_header(request.headers.get(self.header_name), self.auth_key)
        except ConfigError as e:
            logger.error("API_AUTH_KEY environment variable is not set.")
            return JSONResponse(status_code=e.status_code, content={"error": e.message})
        except AuthError as e:
            logger.warning(f"Rejected {request.method} {request.url.path}: missing or invalid {self.header_name}")
            return JSONResponse(status_code=e.status_code, content={"error": e.message})

        return await call_next(request)
