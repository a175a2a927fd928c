"""Unit tests for the local recipe store."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from pantry_ai.models.models import Recipe
from pantry_ai.storage.recipe_store import RECIPE_INDEX_KEY, LocalRecipeStore
from pantry_ai.utils.errors import StorageError


def make_recipe(recipe_id: str, title: str = "Pilau") -> Recipe:
    return Recipe(id=recipe_id, title=title, ingredients=[{"name": "rice"}], steps=["Cook the rice."])


@pytest.fixture
def recipe_store(memory_store):
    return LocalRecipeStore(memory_store)


class TestLocalRecipeStore:
    """Test save/list/get/delete round-trips."""

    @pytest.mark.asyncio
    async def test_save_then_list_contains_exactly_one(self, recipe_store):
        recipe = make_recipe("ai-1-abc")
        await recipe_store.save(recipe)

        saved = await recipe_store.list()
        assert [r.id for r in saved].count("ai-1-abc") == 1
        assert saved[0].title == "Pilau"

    @pytest.mark.asyncio
    async def test_delete_then_list_contains_none(self, recipe_store):
        await recipe_store.save(make_recipe("ai-1-abc"))
        await recipe_store.delete("ai-1-abc")

        assert [r.id for r in await recipe_store.list()] == []
        assert await recipe_store.get("ai-1-abc") is None

    @pytest.mark.asyncio
    async def test_repeated_save_is_idempotent(self, recipe_store):
        recipe = make_recipe("ai-1-abc")
        await recipe_store.save(recipe)
        await recipe_store.save(recipe)

        assert len(await recipe_store.list()) == 1

    @pytest.mark.asyncio
    async def test_newest_first(self, recipe_store):
        await recipe_store.save(make_recipe("first"))
        await recipe_store.save(make_recipe("second"))

        assert [r.id for r in await recipe_store.list()] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_get_returns_record(self, recipe_store, memory_store):
        await recipe_store.save(make_recipe("ai-2-xyz", title="Ugali"))

        assert (await recipe_store.get("ai-2-xyz")).title == "Ugali"
        assert "user_recipe_ai-2-xyz" in await memory_store.get_all_keys()

    @pytest.mark.asyncio
    async def test_index_stores_camel_case_records(self, recipe_store, memory_store):
        recipe = make_recipe("ai-3-xyz")
        recipe.ai_generated = True
        await recipe_store.save(recipe)

        index = json.loads(await memory_store.get_item(RECIPE_INDEX_KEY))
        assert index[0]["aiGenerated"] is True

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_every_entry(self, recipe_store):
        await asyncio.gather(*(recipe_store.save(make_recipe(f"r{i}")) for i in range(10)))
        assert len(await recipe_store.list()) == 10

    @pytest.mark.asyncio
    async def test_storage_errors_are_swallowed(self):
        store = AsyncMock()
        store.get_item.side_effect = OSError("disk gone")
        recipe_store = LocalRecipeStore(store)

        assert await recipe_store.list() == []
        await recipe_store.save(make_recipe("x"))

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self):
        store = AsyncMock()
        store.set_item.side_effect = OSError("disk gone")
        recipe_store = LocalRecipeStore(store, raise_on_storage_error=True)

        with pytest.raises(StorageError):
            await recipe_store.save(make_recipe("x"))
