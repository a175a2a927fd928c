"""Recipe and ingredient AI pipeline.

Every model-backed operation follows the same sequence:

1. Build a cache key from the request
2. Cache lookup; a hit returns without any network call
3. On a miss, call the primary model client through with_retry(); once it
   has exhausted its attempts, the next client in the chain is tried
4. Parse, validate and post-process the response, write the cache, return

Failure policy differs per operation:
- detect_ingredients / generate_recipe_from_ingredients propagate errors
  (unparseable vision output degrades to an empty result instead)
- generate_images never raises; it returns placeholder URLs
- enhance_recipe returns the input unchanged; get_recipe_suggestions returns []

Degraded results are never written to the cache.

With SINGLE_FLIGHT enabled, concurrent cache-missing calls for the same key
await one shared task, so they cause one upstream call and one cache write.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, TypeVar

from pydantic import ValidationError

from pantry_ai.clients.images import prepare_image
from pantry_ai.clients.parsing import (
    parse_detection_payload,
    parse_enhancement_payload,
    parse_recipe_payload,
    parse_suggestions_payload,
)
from pantry_ai.models.models import (
    DetectionOptions,
    IngredientDetectionResult,
    ParseFailure,
    Recipe,
    RecipeGenerationRequest,
    RecipeGenerationResult,
    RecipePreferences,
    RecipeSuggestion,
)
from pantry_ai.promotions.products import ensure_promoted_products
from pantry_ai.storage.cache import (
    IMAGE_GENERATION_PREFIX,
    RECIPE_GENERATION_PREFIX,
    RECIPE_SUGGESTIONS_PREFIX,
    VISION_ANALYSIS_PREFIX,
    ResponseCache,
    make_cache_key,
    now_ms,
)
from pantry_ai.storage.recipe_store import LocalRecipeStore
from pantry_ai.utils.config import Config
from pantry_ai.utils.errors import NON_RETRYABLE_ERRORS, ConfigurationError, ResponseParseError
from pantry_ai.utils.logger import logger
from pantry_ai.utils.retry import with_retry

T = TypeVar("T")

# Flat per-recipe estimate; token usage is not metered
ESTIMATED_RECIPE_COST = 0.02

PARSE_FAILURE_WARNING = "Image analysis had parsing issues"
PARSE_FAILURE_SUGGESTION = "Could not parse ingredients from image"


class ModelClient(Protocol):
    """One external model provider. Each method is a single request/response cycle."""

    provider: str
    model_name: str
    vision_model_name: str

    async def detect_ingredients(self, image_data_url: str, options: Optional[DetectionOptions] = None) -> str: ...

    async def generate_recipe(
        self,
        ingredients: list[str],
        preferences: Optional[RecipePreferences] = None,
        style: Optional[str] = None,
    ) -> str: ...

    async def enhance_recipe(self, title: str, ingredient_names: list[str]) -> str: ...

    async def suggest_recipes(self, ingredients: list[str], limit: int) -> str: ...

    async def generate_image(self, prompt: str) -> Optional[str]: ...


class RecipeAIPipeline:
    """Cache-first, retrying orchestration of the model clients.

    Args:
        config: Retry, single-flight and placeholder settings.
        cache: Response cache shared by all operations.
        clients: Model clients in priority order; later ones are fallbacks.
        recipe_store: Optional local store for saved recipes.
        clock: Epoch-milliseconds clock (injectable for tests).

    Raises:
        ConfigurationError: If no model client is given.
    """

    def __init__(
        self,
        config: Config,
        cache: ResponseCache,
        clients: Sequence[ModelClient],
        recipe_store: Optional[LocalRecipeStore] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if not clients:
            raise ConfigurationError("At least one model client is required")
        self.config = config
        self.cache = cache
        self.clients = list(clients)
        self.recipe_store = recipe_store
        self.clock = clock or now_ms
        self._inflight: dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # Shared machinery
    # ------------------------------------------------------------------

    async def _call_with_fallback(
        self,
        operation_name: str,
        call: Callable[[ModelClient], Awaitable[T]],
    ) -> tuple[T, ModelClient]:
        """Run ``call`` against each client in turn until one succeeds within its retries."""
        last_error: Optional[Exception] = None
        for index, client in enumerate(self.clients):
            try:
                result = await with_retry(
                    lambda c=client: call(c),
                    retries=self.config.MAX_RETRIES,
                    delay_seconds=self.config.RETRY_DELAY_SECONDS,
                    exponential_backoff=self.config.EXPONENTIAL_BACKOFF,
                    jitter=self.config.RETRY_JITTER,
                    operation_name=operation_name,
                )
                return result, client
            except NON_RETRYABLE_ERRORS:
                raise
            except Exception as e:
                last_error = e
                if index + 1 < len(self.clients):
                    logger.warning(
                        f"{operation_name} failed on {client.provider}, falling back to {self.clients[index + 1].provider}",
                        extra={"operation": operation_name, "provider": client.provider},
                    )
        raise last_error

    async def _single_flight(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Share one in-flight task between concurrent callers with the same cache key."""
        if not self.config.SINGLE_FLIGHT:
            return await factory()

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task

            def _forget(done: asyncio.Future) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]
                # Mark the exception retrieved; every waiting caller may have been cancelled
                if not done.cancelled():
                    done.exception()

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight request", extra={"cache_key": key})
        # One cancelled caller must not cancel the shared task
        return await asyncio.shield(task)

    async def _cached(self, key: str, model: Any) -> Any:
        """Cached payload validated as ``model``; an unreadable entry is a miss."""
        data = await self.cache.get(key)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid cache entry: {e}", extra={"cache_key": key})
            return None

    # ------------------------------------------------------------------
    # Ingredient detection
    # ------------------------------------------------------------------

    async def detect_ingredients(
        self,
        image_base64: str | bytes,
        options: Optional[DetectionOptions] = None,
    ) -> IngredientDetectionResult:
        """Detect ingredients in a food photo.

        Args:
            image_base64: Base64 string, ``data:`` URL or raw bytes (JPEG/PNG/WEBP).
            options: Prompt options. Defaults to quantity and nutrition hints.

        Returns:
            IngredientDetectionResult. An unparseable model answer yields an
            empty result with a warning (not cached).

        Raises:
            InvalidImageError: If the image cannot be used.
            ModelAPIError: If every client fails after its retries.
        """
        options = options or DetectionOptions(suggest_quantities=True, enhance_with_nutrition=True)
        image = prepare_image(image_base64, self.config)
        key = make_cache_key(VISION_ANALYSIS_PREFIX, {"image": image.data_url, "options": options.to_storage()})

        cached = await self._cached(key, IngredientDetectionResult)
        if cached is not None:
            return cached

        async def _run() -> IngredientDetectionResult:
            start = self.clock()

            def _unparsed(reason: str) -> IngredientDetectionResult:
                logger.warning(
                    f"Vision response could not be parsed: {reason}",
                    extra={"operation": "detect_ingredients", "cache_key": key},
                )
                return IngredientDetectionResult(
                    ingredients=[],
                    suggestions=[PARSE_FAILURE_SUGGESTION],
                    warnings=[PARSE_FAILURE_WARNING],
                    image_quality="poor",
                    processing_time_ms=max(self.clock() - start, 0),
                )

            try:
                text, _client = await self._call_with_fallback(
                    "detect_ingredients", lambda c: c.detect_ingredients(image.data_url, options)
                )
            except ResponseParseError as e:
                # Response body had no usable content (e.g. null message content)
                return _unparsed(str(e))
            parsed = parse_detection_payload(text, self.clock() - start)
            if isinstance(parsed, ParseFailure):
                return _unparsed(parsed.reason)
            await self.cache.set(key, parsed.to_storage())
            logger.info(f"Detected {len(parsed.ingredients)} ingredients", extra={"operation": "detect_ingredients"})
            return parsed

        return await self._single_flight(key, _run)

    # ------------------------------------------------------------------
    # Recipe generation
    # ------------------------------------------------------------------

    async def generate_recipe_from_ingredients(
        self,
        ingredients: list[str],
        preferences: Optional[RecipePreferences | dict] = None,
        style: Optional[str] = None,
        generate_images: bool = False,
        image_count: int = 2,
    ) -> RecipeGenerationResult:
        """Generate a recipe that uses the given ingredients.

        The recipe always references at least one promoted product. With
        ``generate_images`` the recipe gets ``image_count`` images and the
        first becomes the hero image.

        Raises:
            ValueError: If the request is invalid (e.g. no ingredients).
            ResponseParseError: If the model answer is not a usable recipe.
            ModelAPIError: If every client fails after its retries.
        """
        request = RecipeGenerationRequest(
            ingredients=ingredients,
            preferences=preferences,
            style=style,
            generate_images=generate_images,
            image_count=image_count,
        )
        key = make_cache_key(RECIPE_GENERATION_PREFIX, request.to_storage())

        cached = await self._cached(key, RecipeGenerationResult)
        if cached is not None:
            return cached

        async def _run() -> RecipeGenerationResult:
            start = self.clock()
            text, client = await self._call_with_fallback(
                "generate_recipe",
                lambda c: c.generate_recipe(request.ingredients, request.preferences, request.style),
            )
            parsed = parse_recipe_payload(text, client.model_name, self.clock())
            if isinstance(parsed, ParseFailure):
                raise ResponseParseError(f"Recipe response could not be parsed: {parsed.reason}")
            recipe = ensure_promoted_products(parsed)

            degraded = False
            if request.generate_images:
                images, degraded = await self._generate_images(
                    f"{recipe.title}: {recipe.summary or ''}".rstrip(": "), request.image_count
                )
                recipe.images = images
                recipe.hero_image = images[0] if images else None

            result = RecipeGenerationResult(
                recipe=recipe,
                generation_time_ms=max(self.clock() - start, 0),
                estimated_cost=ESTIMATED_RECIPE_COST,
            )
            if not degraded:
                await self.cache.set(key, result.to_storage())
            logger.info(f"Generated recipe '{recipe.title}' ({recipe.id})", extra={"operation": "generate_recipe"})
            return result

        return await self._single_flight(key, _run)

    async def generate_recipe_from_ingredients_list(self, ingredients: list[str]) -> RecipeGenerationResult:
        """Quick generation with East African, easy, 4-serving, 60-minute defaults and no images."""
        return await self.generate_recipe_from_ingredients(
            ingredients,
            preferences=RecipePreferences(cuisine="East African", difficulty="easy", servings=4, max_cook_time=60),
            style="traditional",
            generate_images=False,
        )

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def _generate_images(self, prompt: str, count: int) -> tuple[list[str], bool]:
        """Images for ``prompt`` plus whether the result is degraded (contains placeholders)."""
        if count < 1:
            return [], False

        key = make_cache_key(IMAGE_GENERATION_PREFIX, {"prompt": prompt, "count": count})
        cached = await self.cache.get(key)
        if isinstance(cached, list):
            return cached, False

        async def _run() -> tuple[list[str], bool]:
            placeholder = self.config.PLACEHOLDER_IMAGE_URL
            try:
                images: list[str] = []
                for _ in range(count):
                    url, _client = await self._call_with_fallback(
                        "generate_images", lambda c: c.generate_image(prompt)
                    )
                    images.append(url or placeholder)
            except Exception as e:
                logger.error(f"Image generation error: {e}", extra={"operation": "generate_images"})
                return [placeholder] * count, True

            if placeholder in images:
                return images, True
            await self.cache.set(key, images)
            return images, False

        return await self._single_flight(key, _run)

    async def generate_images(self, prompt: str, count: int = 2) -> list[str]:
        """Generate ``count`` food photos for ``prompt``. Never raises; failures yield placeholders."""
        images, _ = await self._generate_images(prompt, count)
        return images

    # ------------------------------------------------------------------
    # Enhancement and suggestions
    # ------------------------------------------------------------------

    async def enhance_recipe(self, recipe: Recipe) -> Recipe:
        """Append model tips and replace variations/pairings; returns ``recipe`` unchanged on any failure."""
        try:
            text, _client = await self._call_with_fallback(
                "enhance_recipe",
                lambda c: c.enhance_recipe(recipe.title, [i.name for i in recipe.ingredients]),
            )
        except Exception as e:
            logger.error(f"Recipe enhancement error: {e}", extra={"operation": "enhance_recipe"})
            return recipe

        enhancements = parse_enhancement_payload(text)
        if isinstance(enhancements, ParseFailure):
            logger.warning(f"Recipe enhancement could not be parsed: {enhancements.reason}")
            return recipe

        return recipe.model_copy(
            deep=True,
            update={
                "tips": [*recipe.tips, *enhancements.get("tips", [])],
                "variations": enhancements.get("variations") or recipe.variations,
                "pairings": enhancements.get("pairings") or recipe.pairings,
            },
        )

    async def get_recipe_suggestions(self, ingredients: list[str], limit: int = 5) -> list[RecipeSuggestion]:
        """Recipe ideas for the given ingredients; [] on any failure."""
        key = make_cache_key(RECIPE_SUGGESTIONS_PREFIX, {"ingredients": ingredients, "limit": limit})
        cached = await self.cache.get(key)
        if isinstance(cached, list):
            try:
                return [RecipeSuggestion.model_validate(item) for item in cached]
            except ValidationError as e:
                logger.warning(f"Ignoring invalid cache entry: {e}", extra={"cache_key": key})

        try:
            text, _client = await self._call_with_fallback(
                "get_recipe_suggestions", lambda c: c.suggest_recipes(ingredients, limit)
            )
        except Exception as e:
            logger.error(f"Recipe suggestions error: {e}", extra={"operation": "get_recipe_suggestions"})
            return []

        suggestions = parse_suggestions_payload(text)
        if isinstance(suggestions, ParseFailure):
            logger.warning(f"Recipe suggestions could not be parsed: {suggestions.reason}")
            return []
        suggestions = suggestions[:limit]
        await self.cache.set(key, [s.to_storage() for s in suggestions])
        return suggestions

    # ------------------------------------------------------------------
    # Cache and local store
    # ------------------------------------------------------------------

    async def clear_cache(self) -> int:
        return await self.cache.clear()

    def _require_store(self) -> LocalRecipeStore:
        if self.recipe_store is None:
            raise ConfigurationError("No local recipe store is attached to this pipeline")
        return self.recipe_store

    async def save_generated_recipe(self, recipe: Recipe) -> None:
        await self._require_store().save(recipe)

    async def list_saved_recipes(self) -> list[Recipe]:
        return await self._require_store().list()

    async def delete_saved_recipe(self, recipe_id: str) -> None:
        await self._require_store().delete(recipe_id)
