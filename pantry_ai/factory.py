"""Construction of the pipeline and pantry service from configuration.

create_pipeline() is the startup entry point: it validates the configuration
once, so a missing API key fails here rather than on the first request.
"""

from typing import Optional

import aiohttp
from supabase import acreate_client

from pantry_ai.clients.gemini_client import GeminiClient
from pantry_ai.clients.openai_client import OpenAIClient
from pantry_ai.services.ai_pipeline import ModelClient, RecipeAIPipeline
from pantry_ai.services.pantry_service import PantryService
from pantry_ai.storage.cache import ResponseCache
from pantry_ai.storage.kv_store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from pantry_ai.storage.recipe_store import LocalRecipeStore
from pantry_ai.utils.config import Config, config as default_config
from pantry_ai.utils.errors import ConfigurationError
from pantry_ai.utils.logger import logger


def create_store(cfg: Config) -> KeyValueStore:
    """File-backed store under STORAGE_DIR, or in-memory when it is unset."""
    if cfg.STORAGE_DIR:
        return FileKeyValueStore(cfg.STORAGE_DIR)
    return InMemoryKeyValueStore()


def create_client(provider: str, cfg: Config, session: Optional[aiohttp.ClientSession] = None) -> ModelClient:
    if provider == "openai":
        return OpenAIClient(cfg, session=session)
    if provider == "gemini":
        return GeminiClient(cfg)
    raise ConfigurationError(f"Provider must be 'openai' or 'gemini', got: {provider}")


def create_pipeline(
    config: Optional[Config] = None,
    session: Optional[aiohttp.ClientSession] = None,
    store: Optional[KeyValueStore] = None,
) -> RecipeAIPipeline:
    """Validate configuration and assemble a RecipeAIPipeline.

    Args:
        config: Configuration (default: module-level config from the environment).
        session: Optional shared aiohttp session for the OpenAI client.
        store: Key/value store for cache and saved recipes (default: per STORAGE_DIR).

    Returns:
        Pipeline with cache, local recipe store and the provider chain.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    cfg = config or default_config
    cfg.validate()

    store = store or create_store(cfg)
    cache = ResponseCache(
        store,
        expiry_ms=cfg.cache_expiry_ms,
        raise_on_storage_error=cfg.RAISE_ON_STORAGE_ERROR,
    )
    recipe_store = LocalRecipeStore(store, raise_on_storage_error=cfg.RAISE_ON_STORAGE_ERROR)
    clients = [create_client(provider, cfg, session) for provider in cfg.provider_chain()]

    logger.info(f"Pipeline ready with providers: {', '.join(cfg.provider_chain())}")
    return RecipeAIPipeline(cfg, cache, clients, recipe_store=recipe_store)


async def create_pantry_service(config: Optional[Config] = None, user_id: Optional[str] = None) -> PantryService:
    """Connect to Supabase and return a PantryService for ``user_id``.

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_KEY is missing.
    """
    cfg = config or default_config
    if not cfg.SUPABASE_URL or not cfg.SUPABASE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
    client = await acreate_client(cfg.SUPABASE_URL, cfg.SUPABASE_KEY)
    return PantryService(client, user_id=user_id)
