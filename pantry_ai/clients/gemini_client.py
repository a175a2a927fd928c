"""Gemini model client using the google-genai SDK.

Same surface as OpenAIClient so either can be primary or fallback. The SDK
client is synchronous; calls run in a worker thread via asyncio.to_thread.
SDK errors are wrapped in ModelAPIError so the retry policy treats both
providers alike.
"""

import asyncio
import base64
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from pantry_ai.clients.images import decode_image, validate_image_format
from pantry_ai.models.models import DetectionOptions, RecipePreferences
from pantry_ai.prompts.prompts import (
    DETECTION_USER_TEXT,
    ENHANCEMENT_SYSTEM_PROMPT,
    SUGGESTIONS_SYSTEM_PROMPT,
    get_detection_system_prompt,
    get_enhancement_prompt,
    get_image_prompt,
    get_recipe_system_prompt,
    get_recipe_user_prompt,
    get_suggestions_prompt,
)
from pantry_ai.utils.config import Config
from pantry_ai.utils.errors import ConfigurationError, ModelAPIError
from pantry_ai.utils.logger import logger


PROVIDER = "gemini"


class GeminiClient:
    """Client for Gemini text/vision generation and Imagen image generation.

    Raises:
        ConfigurationError: If GEMINI_API_KEY is empty.
    """

    provider = PROVIDER

    def __init__(self, cfg: Config, client: Optional[genai.Client] = None) -> None:
        if not cfg.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY environment variable is required")
        self.model_name = cfg.GEMINI_MODEL
        self.vision_model_name = cfg.GEMINI_MODEL
        self.image_model_name = cfg.GEMINI_IMAGE_MODEL
        self.timeout_ms = int(cfg.REQUEST_TIMEOUT_SECONDS * 1000)
        self._client = client or genai.Client(
            api_key=cfg.GEMINI_API_KEY,
            http_options=types.HttpOptions(timeout=self.timeout_ms),
        )

    async def _call(self, label: str, func, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except genai_errors.APIError as e:
            raise ModelAPIError(f"{label} API error: {e}", status=getattr(e, "code", None), provider=PROVIDER) from e
        except (httpx.HTTPError, OSError) as e:
            raise ModelAPIError(f"{label} request failed: {e}", provider=PROVIDER) from e

    async def _generate_text(
        self,
        contents: list[Any],
        system_instruction: str,
        max_tokens: int,
        temperature: float,
        label: str,
    ) -> str:
        logger.debug(f"{label} request to {self.model_name}", extra={"provider": PROVIDER})
        response = await self._call(
            label,
            self._client.models.generate_content,
            model=self.model_name,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                response_mime_type="application/json",
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        return response.text or ""

    async def detect_ingredients(self, image_data_url: str, options: Optional[DetectionOptions] = None) -> str:
        image_bytes = decode_image(image_data_url)
        mime_type = validate_image_format(image_bytes)
        contents = [DETECTION_USER_TEXT, types.Part.from_bytes(data=image_bytes, mime_type=mime_type)]
        return await self._generate_text(contents, get_detection_system_prompt(options), 1000, 0.3, "Vision")

    async def generate_recipe(
        self,
        ingredients: list[str],
        preferences: Optional[RecipePreferences] = None,
        style: Optional[str] = None,
    ) -> str:
        return await self._generate_text(
            [get_recipe_user_prompt(ingredients, preferences, style)],
            get_recipe_system_prompt(),
            2000,
            0.7,
            "Recipe generation",
        )

    async def enhance_recipe(self, title: str, ingredient_names: list[str]) -> str:
        return await self._generate_text(
            [get_enhancement_prompt(title, ingredient_names)], ENHANCEMENT_SYSTEM_PROMPT, 500, 0.7, "Enhancement"
        )

    async def suggest_recipes(self, ingredients: list[str], limit: int) -> str:
        return await self._generate_text(
            [get_suggestions_prompt(ingredients, limit)], SUGGESTIONS_SYSTEM_PROMPT, 300, 0.8, "Suggestions"
        )

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Generate one image and return it as a ``data:`` URI, or None if nothing came back."""
        response = await self._call(
            "Image generation",
            self._client.models.generate_images,
            model=self.image_model_name,
            prompt=get_image_prompt(prompt),
            config=types.GenerateImagesConfig(number_of_images=1),
        )
        generated = getattr(response, "generated_images", None)
        if not generated or generated[0].image is None or not generated[0].image.image_bytes:
            return None
        image = generated[0].image
        mime_type = image.mime_type or "image/png"
        return f"data:{mime_type};base64,{base64.b64encode(image.image_bytes).decode('ascii')}"
