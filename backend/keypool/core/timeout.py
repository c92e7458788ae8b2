import asyncio
import logging
from typing import Awaitable, TypeVar

from keypool.core.config import DEFAULT_TIMEOUT_MS
from keypool.core.errors import RequestTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimeoutGuard:
    """Bounds the select-and-forward pipeline to a deadline in milliseconds."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.timeout_ms = timeout_ms

    async def run(self, pipeline: Awaitable[T]) -> T:
        # wait_for cancels the pipeline on expiry, which aborts any in-flight upstream call
        try:
            return await asyncio.wait_for(pipeline, timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.error(f"Request timed out after {self.timeout_ms}ms.")
            raise RequestTimeout()
