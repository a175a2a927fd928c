"""Local persistence of user-saved recipes.

Layout in the key/value store:
- ``user_recipe_<id>``: one JSON record per recipe
- ``user_recipes_list``: JSON array of full recipe records, newest first

The index is updated read-modify-write under an asyncio.Lock, so concurrent
saves/deletes in one process cannot lose each other's updates.
"""

import asyncio
import json
from typing import Optional

from pydantic import ValidationError

from pantry_ai.models.models import Recipe
from pantry_ai.storage.kv_store import KeyValueStore
from pantry_ai.utils.errors import StorageError
from pantry_ai.utils.logger import logger


RECIPE_KEY_PREFIX = "user_recipe_"
RECIPE_INDEX_KEY = "user_recipes_list"


class LocalRecipeStore:
    """Save, list, fetch and delete recipes in a KeyValueStore."""

    def __init__(self, store: KeyValueStore, raise_on_storage_error: bool = False) -> None:
        self.store = store
        self.raise_on_storage_error = raise_on_storage_error
        self._index_lock = asyncio.Lock()

    @staticmethod
    def record_key(recipe_id: str) -> str:
        return f"{RECIPE_KEY_PREFIX}{recipe_id}"

    def _handle_error(self, operation: str, error: Exception) -> None:
        logger.error(f"{operation} error: {error}", extra={"operation": operation})
        if self.raise_on_storage_error:
            raise StorageError(f"{operation} failed: {error}") from error

    async def _read_index(self) -> list[dict]:
        raw = await self.store.get_item(RECIPE_INDEX_KEY)
        if not raw:
            return []
        index = json.loads(raw)
        return index if isinstance(index, list) else []

    async def save(self, recipe: Recipe) -> None:
        """Persist ``recipe`` and add it to the front of the index if not already listed."""
        record = recipe.to_storage()
        try:
            await self.store.set_item(self.record_key(recipe.id), json.dumps(record))
            async with self._index_lock:
                index = await self._read_index()
                if not any(entry.get("id") == recipe.id for entry in index):
                    index.insert(0, record)
                    await self.store.set_item(RECIPE_INDEX_KEY, json.dumps(index))
        except Exception as e:
            self._handle_error("Save recipe", e)
            return
        logger.info(f"Saved recipe {recipe.id}")

    async def list(self) -> list[Recipe]:
        """All saved recipes, newest first. Unreadable entries are skipped."""
        try:
            index = await self._read_index()
        except Exception as e:
            self._handle_error("List recipes", e)
            return []

        recipes: list[Recipe] = []
        for entry in index:
            try:
                recipes.append(Recipe.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable saved recipe: {e}")
        return recipes

    async def get(self, recipe_id: str) -> Optional[Recipe]:
        try:
            raw = await self.store.get_item(self.record_key(recipe_id))
            return Recipe.model_validate_json(raw) if raw else None
        except Exception as e:
            self._handle_error("Get recipe", e)
            return None

    async def delete(self, recipe_id: str) -> None:
        """Remove the record and drop it from the index."""
        try:
            await self.store.remove_item(self.record_key(recipe_id))
            async with self._index_lock:
                index = await self._read_index()
                remaining = [entry for entry in index if entry.get("id") != recipe_id]
                if len(remaining) != len(index):
                    await self.store.set_item(RECIPE_INDEX_KEY, json.dumps(remaining))
        except Exception as e:
            self._handle_error("Delete recipe", e)
            return
        logger.info(f"Deleted recipe {recipe_id}")
