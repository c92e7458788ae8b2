"""
Key Selector

Chooses the key to use next for a model:
1. A key that has never served this model
2. Otherwise the key with usage == 0 and the fewest errors
3. Otherwise the key with the lowest (usage, error)

Ties always go to the key that comes first in store order.
"""
import logging
from typing import Iterable, List, Sequence

from keypool.core.errors import KeyPoolEmpty
from keypool.core.key_store import KeyStore, mask_key
from keypool.models.api_key import ApiKeyUsage

logger = logging.getLogger(__name__)


def choose_key(keys: Sequence[str], usage_rows: Iterable[ApiKeyUsage]) -> str:
    """
    Apply the preference policy to one selection snapshot.

    Args:
        keys: Registered keys in store order.
        usage_rows: Usage rows for the requested model.

    Raises:
        KeyPoolEmpty: If no key is registered.
    """
    if not keys:
        raise KeyPoolEmpty()

    position = {key: index for index, key in enumerate(keys)}
    rows: List[ApiKeyUsage] = [row for row in usage_rows if row.api_key in position]
    used = {row.api_key for row in rows}

    for key in keys:
        if key not in used:
            return key

    zero_usage = [row for row in rows if row.usage == 0]
    if zero_usage:
        best = min(zero_usage, key=lambda row: (row.error, position[row.api_key]))
        return best.api_key

    best = min(rows, key=lambda row: (row.usage, row.error, position[row.api_key]))
    return best.api_key


class KeySelector:
    def __init__(self, store: KeyStore):
        self._store = store

    def select(self, model: str) -> str:
        keys = self._store.list_keys()
        if not keys:
            logger.error("No API keys found in the key pool.")
            raise KeyPoolEmpty(f"No API key available for model {model}")

        usage_rows = self._store.list_usage(model)
        api_key = choose_key(keys, usage_rows)
        logger.info(
            f"Selected key {mask_key(api_key)} for model {model} "
            f"({len(keys)} keys, {len(usage_rows)} with usage)"
        )
        return api_key
