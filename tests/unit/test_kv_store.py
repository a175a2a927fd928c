"""Unit tests for the file-backed key/value store."""

import pytest

from pantry_ai.storage.kv_store import FileKeyValueStore


class TestFileKeyValueStore:
    """Test FileKeyValueStore persistence semantics."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        store = FileKeyValueStore(tmp_path)
        await store.set_item("ai_recipe_cache_42", '{"data": 1}')
        assert await store.get_item("ai_recipe_cache_42") == '{"data": 1}'

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, tmp_path):
        assert await FileKeyValueStore(tmp_path).get_item("nope") is None

    @pytest.mark.asyncio
    async def test_keys_with_path_characters_are_encoded(self, tmp_path):
        store = FileKeyValueStore(tmp_path)
        await store.set_item("user_recipe_../../etc/passwd", "x")

        assert await store.get_all_keys() == ["user_recipe_../../etc/passwd"]
        assert all(path.parent == tmp_path for path in tmp_path.iterdir())

    @pytest.mark.asyncio
    async def test_overwrite_and_remove(self, tmp_path):
        store = FileKeyValueStore(tmp_path)
        await store.set_item("k", "one")
        await store.set_item("k", "two")
        assert await store.get_item("k") == "two"

        await store.remove_item("k")
        await store.remove_item("k")
        assert await store.get_item("k") is None

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        await FileKeyValueStore(tmp_path).set_item("k", "v")
        assert await FileKeyValueStore(tmp_path).get_item("k") == "v"

    @pytest.mark.asyncio
    async def test_multi_remove(self, tmp_path):
        store = FileKeyValueStore(tmp_path)
        for key in ("a", "b", "c"):
            await store.set_item(key, key)
        await store.multi_remove(["a", "c", "missing"])
        assert await store.get_all_keys() == ["b"]

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path):
        store = FileKeyValueStore(tmp_path)
        await store.set_item("k", "v")
        assert [p.name for p in tmp_path.iterdir() if p.name.startswith(".tmp-")] == []
