"""Unit tests for cache key derivation and the expiring response cache."""

import json
from unittest.mock import AsyncMock

import pytest

from pantry_ai.storage.cache import (
    DEFAULT_EXPIRY_MS,
    IMAGE_GENERATION_PREFIX,
    RECIPE_GENERATION_PREFIX,
    VISION_ANALYSIS_PREFIX,
    ResponseCache,
    make_cache_key,
)
from pantry_ai.storage.kv_store import InMemoryKeyValueStore
from pantry_ai.utils.errors import StorageError


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class TestMakeCacheKey:
    """Test deterministic key derivation."""

    def test_key_is_deterministic(self):
        data = {"ingredients": ["tomatoes", "onions"], "style": "traditional"}
        assert make_cache_key(RECIPE_GENERATION_PREFIX, data) == make_cache_key(RECIPE_GENERATION_PREFIX, dict(data))

    def test_key_has_prefix_and_non_negative_number(self):
        key = make_cache_key(VISION_ANALYSIS_PREFIX, {"image": "abc"})
        assert key.startswith(VISION_ANALYSIS_PREFIX)
        assert key[len(VISION_ANALYSIS_PREFIX):].isdigit()

    def test_different_inputs_give_different_keys(self):
        assert make_cache_key(RECIPE_GENERATION_PREFIX, {"ingredients": ["beef"]}) != make_cache_key(
            RECIPE_GENERATION_PREFIX, {"ingredients": ["chicken"]}
        )

    def test_key_matches_32_bit_string_hash(self):
        """The hash folds h*31 + code point with 32-bit wraparound."""
        # JSON of "a" is '"a"': codes 34, 97, 34
        expected = ((34 * 31) + 97) * 31 + 34
        assert make_cache_key(IMAGE_GENERATION_PREFIX, "a") == f"{IMAGE_GENERATION_PREFIX}{expected}"

    def test_key_is_order_sensitive(self):
        """Logically equal dicts with different key order are not guaranteed to share a key."""
        first = make_cache_key(RECIPE_GENERATION_PREFIX, {"a": 1, "b": 2})
        second = make_cache_key(RECIPE_GENERATION_PREFIX, {"b": 2, "a": 1})
        assert first != second


class TestResponseCache:
    """Test cache get/set/expiry/clear semantics."""

    @pytest.mark.asyncio
    async def test_set_then_get_returns_payload(self, cache):
        await cache.set("ai_recipe_cache_1", {"title": "Stew"})
        assert await cache.get("ai_recipe_cache_1") == {"title": "Stew"}

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, cache):
        assert await cache.get("ai_recipe_cache_missing") is None

    @pytest.mark.asyncio
    async def test_entry_expires_after_window(self, memory_store):
        """An entry written at t0 is served before t0+24h and absent at/after it."""
        clock = FakeClock()
        cache = ResponseCache(memory_store, clock=clock)
        await cache.set("ai_vision_cache_1", ["tomato"])

        clock.now += DEFAULT_EXPIRY_MS - 1
        assert await cache.get("ai_vision_cache_1") == ["tomato"]

        clock.now += 1
        assert await cache.get("ai_vision_cache_1") is None
        # Stale record stays in place until overwritten
        assert await memory_store.get_item("ai_vision_cache_1") is not None

    @pytest.mark.asyncio
    async def test_set_overwrites_and_refreshes_timestamp(self, memory_store):
        clock = FakeClock()
        cache = ResponseCache(memory_store, clock=clock)
        await cache.set("k", "old")
        clock.now += DEFAULT_EXPIRY_MS
        await cache.set("k", "new")

        assert await cache.get("k") == "new"
        assert json.loads(await memory_store.get_item("k"))["timestamp"] == clock.now

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_miss(self, memory_store, cache):
        await memory_store.set_item("ai_recipe_cache_2", "not json")
        assert await cache.get("ai_recipe_cache_2") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timestamp", ["yesterday", None, True, [1]])
    async def test_bad_timestamp_reads_as_miss(self, memory_store, cache, timestamp):
        await memory_store.set_item("ai_recipe_cache_3", json.dumps({"data": [1], "timestamp": timestamp}))
        assert await cache.get("ai_recipe_cache_3") is None

    @pytest.mark.asyncio
    async def test_bad_timestamp_raises_in_strict_mode(self, memory_store):
        cache = ResponseCache(memory_store, raise_on_storage_error=True)
        await memory_store.set_item("ai_recipe_cache_4", json.dumps({"data": [1], "timestamp": "yesterday"}))

        with pytest.raises(StorageError):
            await cache.get("ai_recipe_cache_4")

    @pytest.mark.asyncio
    async def test_storage_errors_are_swallowed(self):
        store = AsyncMock()
        store.get_item.side_effect = OSError("disk gone")
        store.set_item.side_effect = OSError("disk gone")
        cache = ResponseCache(store)

        assert await cache.get("k") is None
        await cache.set("k", {"a": 1})

    @pytest.mark.asyncio
    async def test_strict_mode_raises_storage_error(self):
        store = AsyncMock()
        store.get_item.side_effect = OSError("disk gone")
        cache = ResponseCache(store, raise_on_storage_error=True)

        with pytest.raises(StorageError):
            await cache.get("k")

    @pytest.mark.asyncio
    async def test_clear_removes_only_ai_keys(self, memory_store, cache):
        await cache.set("ai_vision_cache_1", 1)
        await cache.set("ai_recipe_cache_2", 2)
        await cache.set("ai_image_cache_3", 3)
        await cache.set("ai_suggest_cache_4", 4)
        await memory_store.set_item("user_recipes_list", "[]")

        assert await cache.clear() == 4
        assert await memory_store.get_all_keys() == ["user_recipes_list"]


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_multi_remove_ignores_missing(self):
        store = InMemoryKeyValueStore()
        await store.set_item("a", "1")
        await store.multi_remove(["a", "b"])
        assert await store.get_all_keys() == []
