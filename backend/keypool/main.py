from contextlib import asynccontextmanager
from typing import Optional
import logging
from logging.handlers import RotatingFileHandler
import os

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from keypool.api import routes_keys, routes_proxy
from keypool.core.auth import AuthGateMiddleware
from keypool.core.config import Settings, load_settings
from keypool.core.database import create_db_and_tables, create_db_engine
from keypool.core.errors import ProxyError
from keypool.core.key_store import KeyStore
from keypool.core.proxy.upstream import RequestForwarder
from keypool.core.selector import KeySelector
from keypool.core.timeout import TimeoutGuard
from keypool.core.usage_logger import TelemetryRecorder

logger = logging.getLogger(__name__)

# Bounds the connection itself; the request deadline is enforced by TimeoutGuard
UPSTREAM_TIMEOUT = httpx.Timeout(300.0)


# ============================================================================
# Logging Configuration
# ============================================================================
def configure_logging():
    log_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))  # backend/
    log_file = os.environ.get("KEYPOOL_LOG_FILE", os.path.join(log_dir, "keypool.log"))

    # Create rotating file handler (10MB per file, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))

    # Also keep console output
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s"
    ))

    logging.basicConfig(
        level=logging.INFO,
        handlers=[file_handler, console_handler]
    )

    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info(f"Logging to file: {log_file}")


class StoreAvailableMiddleware(BaseHTTPMiddleware):
    """Fail every request with 500 if the store could not be initialized."""

    async def dispatch(self, request: Request, call_next):
        error = request.app.state.store_error
        if error is not None:
            logger.error(f"DB Initialization Error: {error}")
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error - DB Initialization Failed"}
            )
        return await call_next(request)


def _init_store(settings: Settings):
    try:
        engine = create_db_engine(settings.database_url)
        create_db_and_tables(engine)
        store = KeyStore(engine)
        logger.info("Database and key store initialized successfully.")
        return store, None
    except Exception as e:
        logger.error(f"Failed to initialize database or key store: {e}")
        return None, e


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application.

    Args:
        settings: Defaults to settings read from the environment.
        store: Pre-built key store; created from settings.database_url if omitted.
        transport: httpx transport for upstream calls (tests use MockTransport).
    """
    settings = settings or load_settings()

    store_error = None
    if store is None:
        store, store_error = _init_store(settings)

    client = httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT, transport=transport)
    recorder = TelemetryRecorder(store) if store is not None else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is not None and not store.check_connection():
            logger.error("Initial database connection check failed.")
        if not settings.auth_key:
            logger.error("API_AUTH_KEY environment variable is not set.")
        logger.info(f"Key pool proxy ready (upstream: {settings.target_api_host}, timeout: {settings.timeout_ms}ms)")

        yield

        if recorder is not None:
            logger.info(f"Waiting for {recorder.pending} pending usage updates...")
            await recorder.drain()
        await client.aclose()
        if store is not None:
            store.engine.dispose()

    app = FastAPI(
        title="Gemini Key Pool Proxy",
        description="Spreads upstream requests across a pool of API keys",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.store_error = store_error
    app.state.recorder = recorder
    app.state.timeout_guard = TimeoutGuard(settings.timeout_ms)
    app.state.forwarder = RequestForwarder(settings.target_api_host, client)
    app.state.selector = KeySelector(store) if store is not None else None

    # Added last runs first: store check, then auth
    app.add_middleware(AuthGateMiddleware, auth_key=settings.auth_key)
    app.add_middleware(StoreAvailableMiddleware)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # malformed request bodies answer 400
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @app.get("/health")
    async def health_check(request: Request):
        connected = store.check_connection()
        if not connected:
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "database": False, "keys_loaded": 0}
            )
        return {
            "status": "ok",
            "database": True,
            "keys_loaded": len(store.list_keys()),
        }

    # Key Management APIs
    app.include_router(routes_keys.router, prefix="/keys", tags=["Keys"])

    # Gemini Proxy (catch-all, registered once and last)
    app.include_router(routes_proxy.router, tags=["Proxy"])

    return app


def main():
    configure_logging()
    settings = load_settings()
    logger.info(f"Server configured to run on port {settings.port}")
    uvicorn.run("keypool.main:create_app", factory=True, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
