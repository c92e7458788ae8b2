"""
Configuration

Environment-driven settings for the key pool proxy.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TARGET_API_HOST = "generativelanguage.googleapis.com"
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_DB_PATH = "keypool.db"
DEFAULT_PORT = 3000


def parse_timeout_ms(raw: Optional[str]) -> int:
    """
    Parse the TIMEOUT value in milliseconds.

    Missing, non-numeric or non-positive values fall back to the default.
    """
    if raw is None or not str(raw).strip():
        return DEFAULT_TIMEOUT_MS
    try:
        timeout_ms = int(str(raw).strip())
    except ValueError:
        logger.warning(f'Invalid TIMEOUT value: "{raw}". Using default {DEFAULT_TIMEOUT_MS}ms.')
        return DEFAULT_TIMEOUT_MS
    if timeout_ms <= 0:
        logger.warning(f'Invalid TIMEOUT value: "{raw}". Using default {DEFAULT_TIMEOUT_MS}ms.')
        return DEFAULT_TIMEOUT_MS
    return timeout_ms


@dataclass
class Settings:
    auth_key: Optional[str] = None
    target_api_host: str = DEFAULT_TARGET_API_HOST
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    port: int = DEFAULT_PORT


def load_settings() -> Settings:
    """Build settings from the process environment."""
    database_url = os.environ.get("KEYPOOL_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{os.environ.get('KEYPOOL_DB_PATH', DEFAULT_DB_PATH)}"

    try:
        port = int(os.environ.get("PORT", DEFAULT_PORT))
    except ValueError:
        port = DEFAULT_PORT

    return Settings(
        auth_key=os.environ.get("API_AUTH_KEY") or None,
        target_api_host=os.environ.get("TARGET_API_HOST") or DEFAULT_TARGET_API_HOST,
        timeout_ms=parse_timeout_ms(os.environ.get("TIMEOUT")),
        database_url=database_url,
        port=port,
    )
