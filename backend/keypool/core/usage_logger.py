"""
Usage Logger

Records the outcome of each forwarding attempt against the key's counters.
Writes run as detached background tasks so they never delay the client
response; failures are logged and dropped.
"""
import asyncio
import logging
from typing import Optional, Set, Tuple

from keypool.core.key_store import KeyStore, mask_key

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {400, 429}


def classify_outcome(status_code: Optional[int]) -> Tuple[int, int]:
    """
    Map an attempt's outcome to (usage increment, error increment).

    Args:
        status_code: Upstream status, or None if no response was received.
    """
    if status_code is None:
        return 0, 1
    if status_code in ERROR_STATUS_CODES or status_code >= 500:
        return 1, 1
    return 1, 0


class TelemetryRecorder:
    """Schedules counter updates and keeps track of the ones still running."""

    def __init__(self, store: KeyStore):
        self._store = store
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def record(self, api_key: str, model: str, status_code: Optional[int]) -> asyncio.Task:
        """Schedule the update for one attempt. Must be called from the event loop."""
        task = asyncio.create_task(self._write(api_key, model, status_code))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _write(self, api_key: str, model: str, status_code: Optional[int]):
        usage, error = classify_outcome(status_code)
        try:
            await asyncio.to_thread(self._store.increment, api_key, model, usage, error)
        except Exception as e:
            logger.error(
                f"Error recording usage/error for key {mask_key(api_key)}, model {model} "
                f"(status {status_code}): {e}"
            )

    async def drain(self):
        """Wait for every outstanding update. Called on shutdown."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
