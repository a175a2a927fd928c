"""OpenAI model client (chat completions, vision and image generation) over aiohttp.

Each method is exactly one HTTPS request/response cycle and returns the raw
model text (or an image URL). Retries, caching and parsing belong to the
pipeline. Non-2xx responses and transport failures raise ModelAPIError,
which the retry policy retries.
"""

import asyncio
from typing import Any, Optional

import aiohttp

from pantry_ai.clients.parsing import chat_content
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


PROVIDER = "openai"


class OpenAIClient:
    """Client for the OpenAI chat and image endpoints.

    Args:
        cfg: Configuration with OPENAI_API_KEY, base URL, model names and
            REQUEST_TIMEOUT_SECONDS.
        session: Shared aiohttp session. When omitted, each request opens
            and closes its own session.

    Raises:
        ConfigurationError: If OPENAI_API_KEY is empty.
    """

    provider = PROVIDER

    def __init__(self, cfg: Config, session: Optional[aiohttp.ClientSession] = None) -> None:
        if not cfg.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")
        self._api_key = cfg.OPENAI_API_KEY
        self.base_url = cfg.OPENAI_BASE_URL
        self.model_name = cfg.OPENAI_TEXT_MODEL
        self.vision_model_name = cfg.OPENAI_VISION_MODEL
        self.image_model_name = cfg.OPENAI_IMAGE_MODEL
        self.timeout = aiohttp.ClientTimeout(total=cfg.REQUEST_TIMEOUT_SECONDS)
        self._session = session

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _send(self, session: aiohttp.ClientSession, url: str, payload: dict[str, Any], label: str) -> Any:
        async with session.post(url, json=payload, headers=self._headers(), timeout=self.timeout) as response:
            if response.status < 200 or response.status >= 300:
                body = await response.text()
                raise ModelAPIError(
                    f"{label} API error: {response.status} {body[:200]}",
                    status=response.status,
                    provider=PROVIDER,
                )
            return await response.json()

    async def _post(self, path: str, payload: dict[str, Any], label: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._session is not None:
                return await self._send(self._session, url, payload, label)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, url, payload, label)
        except ModelAPIError:
            raise
        except asyncio.TimeoutError as e:
            raise ModelAPIError(f"{label} request timed out", provider=PROVIDER) from e
        except aiohttp.ClientError as e:
            raise ModelAPIError(f"{label} request failed: {e}", provider=PROVIDER) from e

    async def _chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_tokens: int,
        temperature: float,
        label: str,
        json_mode: bool = True,
    ) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        logger.debug(f"{label} request to {model}", extra={"provider": PROVIDER})
        return chat_content(await self._post("/chat/completions", payload, label))

    async def detect_ingredients(self, image_data_url: str, options: Optional[DetectionOptions] = None) -> str:
        messages = [
            {"role": "system", "content": get_detection_system_prompt(options)},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": DETECTION_USER_TEXT},
                    {"type": "image_url", "image_url": {"url": image_data_url, "detail": "high"}},
                ],
            },
        ]
        # Vision preview models reject response_format
        return await self._chat(self.vision_model_name, messages, 1000, 0.3, "Vision", json_mode=False)

    async def generate_recipe(
        self,
        ingredients: list[str],
        preferences: Optional[RecipePreferences] = None,
        style: Optional[str] = None,
    ) -> str:
        messages = [
            {"role": "system", "content": get_recipe_system_prompt()},
            {"role": "user", "content": get_recipe_user_prompt(ingredients, preferences, style)},
        ]
        return await self._chat(self.model_name, messages, 2000, 0.7, "Recipe generation")

    async def enhance_recipe(self, title: str, ingredient_names: list[str]) -> str:
        messages = [
            {"role": "system", "content": ENHANCEMENT_SYSTEM_PROMPT},
            {"role": "user", "content": get_enhancement_prompt(title, ingredient_names)},
        ]
        return await self._chat(self.model_name, messages, 500, 0.7, "Enhancement")

    async def suggest_recipes(self, ingredients: list[str], limit: int) -> str:
        messages = [
            {"role": "system", "content": SUGGESTIONS_SYSTEM_PROMPT},
            {"role": "user", "content": get_suggestions_prompt(ingredients, limit)},
        ]
        return await self._chat(self.model_name, messages, 300, 0.8, "Suggestions")

    async def generate_image(self, prompt: str) -> Optional[str]:
        """Generate one image. Returns ``data[0].url`` or None when the response has no image."""
        payload = {
            "model": self.image_model_name,
            "prompt": get_image_prompt(prompt),
            "n": 1,
            "size": "1024x1024",
            "quality": "standard",
            "style": "natural",
        }
        response = await self._post("/images/generations", payload, "Image generation")
        data = response.get("data") if isinstance(response, dict) else None
        if data and isinstance(data[0], dict):
            return data[0].get("url")
        return None
