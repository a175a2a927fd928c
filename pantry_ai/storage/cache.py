"""Time-expiring response cache on top of a key/value store.

Records are stored as JSON ``{"data": ..., "timestamp": <epoch ms>}``. A record
is served only while ``now - timestamp < expiry_ms``; stale records read as a
miss and stay in place until overwritten or cleared.

Cache failures never break the pipeline: read errors become misses and write
errors are skipped, both logged. Strict mode (raise_on_storage_error) raises
StorageError instead, for deployments where "no data" and "store unavailable"
must be told apart.
"""

import json
import time
from typing import Any, Callable, Optional

from pantry_ai.storage.kv_store import KeyValueStore
from pantry_ai.utils.errors import StorageError
from pantry_ai.utils.logger import logger


VISION_ANALYSIS_PREFIX = "ai_vision_cache_"
RECIPE_GENERATION_PREFIX = "ai_recipe_cache_"
IMAGE_GENERATION_PREFIX = "ai_image_cache_"
RECIPE_SUGGESTIONS_PREFIX = "ai_suggest_cache_"

CACHE_PREFIXES = (
    VISION_ANALYSIS_PREFIX,
    RECIPE_GENERATION_PREFIX,
    IMAGE_GENERATION_PREFIX,
    RECIPE_SUGGESTIONS_PREFIX,
)

DEFAULT_EXPIRY_MS = 24 * 60 * 60 * 1000


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def make_cache_key(prefix: str, data: Any) -> str:
    """Build a deterministic cache key from request data.

    Serializes ``data`` to compact JSON (dict insertion order preserved) and
    folds a 32-bit ``h * 31 + ord(c)`` hash over the characters. The hash is
    order-sensitive: two dicts with equal content but different key order may
    produce different keys.

    Args:
        prefix: Key namespace, e.g. VISION_ANALYSIS_PREFIX.
        data: JSON-serializable request description.

    Returns:
        ``prefix`` followed by the absolute hash value.
    """
    serialized = json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)
    h = 0
    for char in serialized:
        h = _to_int32((h << 5) - h + ord(char))
    return f"{prefix}{abs(h)}"


def now_ms() -> int:
    return int(time.time() * 1000)


class ResponseCache:
    """Key/value cache with a fixed expiry window."""

    def __init__(
        self,
        store: KeyValueStore,
        expiry_ms: int = DEFAULT_EXPIRY_MS,
        clock: Optional[Callable[[], int]] = None,
        raise_on_storage_error: bool = False,
    ) -> None:
        self.store = store
        self.expiry_ms = expiry_ms
        self.clock = clock or now_ms
        self.raise_on_storage_error = raise_on_storage_error

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached payload, or None on miss, expiry or read failure."""
        try:
            raw = await self.store.get_item(key)
            if raw is None:
                return None
            record = json.loads(raw)
            data, timestamp = record["data"], record["timestamp"]
            if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
                raise ValueError(f"invalid timestamp {timestamp!r}")
            age = self.clock() - timestamp
        except Exception as e:
            logger.error(f"Cache read error: {e}", extra={"cache_key": key})
            if self.raise_on_storage_error:
                raise StorageError(f"Cache read failed for {key}: {e}") from e
            return None

        if age < self.expiry_ms:
            logger.debug("Cache hit", extra={"cache_key": key})
            return data

        logger.debug("Cache entry expired", extra={"cache_key": key})
        return None

    async def set(self, key: str, data: Any) -> None:
        """Overwrite the entry at ``key`` with ``data`` stamped with the current time."""
        try:
            payload = json.dumps({"data": data, "timestamp": self.clock()})
            await self.store.set_item(key, payload)
        except Exception as e:
            logger.error(f"Cache write error: {e}", extra={"cache_key": key})
            if self.raise_on_storage_error:
                raise StorageError(f"Cache write failed for {key}: {e}") from e

    async def clear(self) -> int:
        """Remove every AI cache entry. Returns the number of keys removed."""
        try:
            keys = await self.store.get_all_keys()
            ai_keys = [key for key in keys if key.startswith(CACHE_PREFIXES)]
            await self.store.multi_remove(ai_keys)
        except Exception as e:
            logger.error(f"Clear cache error: {e}")
            if self.raise_on_storage_error:
                raise StorageError(f"Cache clear failed: {e}") from e
            return 0

        logger.info(f"Cleared {len(ai_keys)} AI cache entries")
        return len(ai_keys)
