"""Parsing and validation of model responses.

Model output is untrusted text. Parsers never raise on bad content: they
return the domain object or a ParseFailure and let the caller decide whether
that is fatal (recipe generation) or degrades (ingredient detection).

JSON extraction is lenient because models sometimes wrap the object in prose
or a markdown fence:
1. Direct json.loads() on the full text
2. The body of a ```json fenced block
3. The outermost {...} span in the text
"""

import json
import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from pantry_ai.clients.images import safe_execute_sync
from pantry_ai.models.models import (
    DetectedIngredient,
    IngredientDetectionResult,
    ParseFailure,
    Recipe,
    RecipeSuggestion,
)
from pantry_ai.utils.errors import ResponseParseError
from pantry_ai.utils.logger import logger


DEFAULT_RECIPE_MINUTES = 30
DEFAULT_DIFFICULTY = "medium"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ID_ALPHABET = string.ascii_lowercase + string.digits

# Keys the pipeline owns; model-supplied values are discarded
_PROVENANCE_KEYS = ("id", "createdBy", "created_by", "aiGenerated", "ai_generated", "aiModel", "ai_model", "createdAt", "created_at")


def extract_json(text: Optional[str]) -> Any:
    """Return the first JSON value found in ``text`` using the lenient strategies, or None."""
    if not text or not isinstance(text, str):
        return None

    parsed = safe_execute_sync(lambda: json.loads(text), "Direct JSON parse", log_level="debug")
    if parsed is not None:
        return parsed

    fence = _FENCE_RE.search(text)
    if fence:
        parsed = safe_execute_sync(lambda: json.loads(fence.group(1)), "Fenced JSON parse", log_level="debug")
        if parsed is not None:
            return parsed

    match = _OBJECT_RE.search(text)
    if match:
        return safe_execute_sync(lambda: json.loads(match.group()), "Regex JSON extraction", log_level="debug")
    return None


def extract_json_object(text: Optional[str]) -> Optional[dict[str, Any]]:
    parsed = extract_json(text)
    return parsed if isinstance(parsed, dict) else None


def chat_content(response_json: Any) -> str:
    """Return ``choices[0].message.content`` from a chat-completion body.

    Raises:
        ResponseParseError: If the body does not have that shape.
    """
    try:
        content = response_json["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ResponseParseError(f"Unexpected chat completion shape: {e}") from e
    if not isinstance(content, str):
        raise ResponseParseError("Chat completion content is empty")
    return content


def new_recipe_id(now_ms: Optional[int] = None) -> str:
    """``ai-<epoch ms>-<9 lowercase alnum>``."""
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"ai-{ms}-{suffix}"


def parse_detection_payload(text: Optional[str], processing_time_ms: int = 0) -> IngredientDetectionResult | ParseFailure:
    """Parse a vision response into an IngredientDetectionResult.

    Ingredient entries without a usable name are dropped; bare strings are
    accepted as names. A response with no JSON object or no ingredients list
    is a ParseFailure.
    """
    payload = extract_json_object(text)
    if payload is None:
        return ParseFailure(reason="No JSON object in vision response", raw=text)

    raw_ingredients = payload.get("ingredients")
    if not isinstance(raw_ingredients, list):
        return ParseFailure(reason="Vision response has no ingredients list", raw=text)

    ingredients: list[DetectedIngredient] = []
    for entry in raw_ingredients:
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        try:
            ingredients.append(DetectedIngredient.model_validate(entry))
        except ValidationError as e:
            logger.debug(f"Dropping invalid detected ingredient {entry!r}: {e}")

    try:
        return IngredientDetectionResult(
            ingredients=ingredients,
            suggestions=payload.get("suggestions") or [],
            warnings=payload.get("warnings") or [],
            image_quality=payload.get("imageQuality") or payload.get("image_quality") or "good",
            processing_time_ms=max(processing_time_ms, 0),
        )
    except (ValidationError, ValueError, TypeError) as e:
        return ParseFailure(reason=f"Invalid detection payload: {e}", raw=text)


def parse_recipe_payload(
    text: Optional[str],
    model_name: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> Recipe | ParseFailure:
    """Parse a recipe-generation response into a Recipe.

    Assigns a fresh ``ai-`` id and AI provenance, and fills the display
    ``time`` and ``difficulty`` from the recipe details.

    Args:
        text: Raw model output.
        model_name: Model recorded as ``ai_model``.
        now_ms: Epoch milliseconds used for id and ``created_at``.

    Returns:
        Recipe, or ParseFailure if no JSON object is found or it does not
        validate (e.g. missing title).
    """
    payload = extract_json_object(text)
    if payload is None:
        return ParseFailure(reason="No JSON object in recipe response", raw=text)

    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    data = {k: v for k, v in payload.items() if k not in _PROVENANCE_KEYS}
    data.update(
        id=new_recipe_id(ms),
        created_by="ai",
        ai_generated=True,
        ai_model=model_name,
        created_at=datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
    )

    try:
        recipe = Recipe.model_validate(data)
    except (ValidationError, ValueError, TypeError) as e:
        return ParseFailure(reason=f"Invalid recipe payload: {e}", raw=text)

    minutes = recipe.details.total_time or recipe.details.cook_time or DEFAULT_RECIPE_MINUTES
    recipe.time = f"{minutes} min"
    recipe.difficulty = recipe.details.difficulty or DEFAULT_DIFFICULTY
    return recipe


def parse_enhancement_payload(text: Optional[str]) -> dict[str, list[str]] | ParseFailure:
    """Parse ``{tips, variations, pairings}``; absent or non-list keys are omitted."""
    payload = extract_json_object(text)
    if payload is None:
        return ParseFailure(reason="No JSON object in enhancement response", raw=text)

    enhancements: dict[str, list[str]] = {}
    for key in ("tips", "variations", "pairings"):
        value = payload.get(key)
        if isinstance(value, list):
            enhancements[key] = [str(item) for item in value if item]
    return enhancements


def parse_suggestions_payload(text: Optional[str]) -> list[RecipeSuggestion] | ParseFailure:
    """Parse ``{"recipes": [...]}`` (or a bare array) into RecipeSuggestions."""
    payload = extract_json(text)
    if isinstance(payload, dict):
        payload = payload.get("recipes") or payload.get("suggestions")
    if not isinstance(payload, list):
        return ParseFailure(reason="No recipe suggestions in response", raw=text)

    suggestions: list[RecipeSuggestion] = []
    for entry in payload:
        if isinstance(entry, str):
            entry = {"title": entry}
        try:
            suggestions.append(RecipeSuggestion.model_validate(entry))
        except (ValidationError, ValueError, TypeError) as e:
            logger.debug(f"Dropping invalid suggestion {entry!r}: {e}")
    return suggestions
