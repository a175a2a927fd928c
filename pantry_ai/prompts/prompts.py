"""Prompt builders for the Pantry AI model calls.

Provides factory functions that render system and user prompts for each
model operation. Provider clients share these so OpenAI and Gemini receive
the same instructions.
"""

import json
from typing import Optional

from pantry_ai.models.models import DetectionOptions, RecipePreferences
from pantry_ai.promotions.products import build_promotion_rules


DETECTION_USER_TEXT = (
    "Identify all food ingredients in this image. Be specific about types and varieties when visible."
)

ENHANCEMENT_SYSTEM_PROMPT = (
    "Provide brief, practical enhancements for recipes. "
    "Return JSON with tips, variations, and pairings arrays."
)

SUGGESTIONS_SYSTEM_PROMPT = (
    "Suggest recipes based on available ingredients. "
    'Return a JSON object: {"recipes": [{"title": "...", "match": <0-100>}]}.'
)

_RECIPE_SCHEMA = """{
  "id": "unique-id",
  "title": "Recipe Name",
  "summary": "Brief description",
  "ingredients": [{"name": "...", "quantity": ..., "unit": "...", "note": "..."}],
  "steps": [{"title": "...", "body": "...", "time": ...}],
  "details": {
    "servings": ...,
    "prepTime": ...,
    "cookTime": ...,
    "difficulty": "easy|medium|hard",
    "cuisine": "...",
    "dietTags": [...],
    "equipment": [...]
  },
  "nutrition": {
    "calories": ...,
    "protein": ...,
    "carbs": ...,
    "fat": ...
  },
  "tips": [...],
  "tags": [...]
}"""


def get_detection_system_prompt(options: Optional[DetectionOptions] = None) -> str:
    """Generate the vision system prompt.

    Args:
        options: Flags adding quantity estimates, nutrition categories and an
            output language to the instructions.

    Returns:
        str: System prompt asking for the detection JSON object.
    """
    options = options or DetectionOptions()
    lines = [
        "You are a helpful kitchen assistant that identifies ingredients from images.",
        "Respond with a JSON object containing an array of detected ingredients.",
        'Each ingredient has "name", "confidence" (0.0-1.0), "quantity", "category" and "freshness".',
    ]
    if options.suggest_quantities:
        lines.append("Include estimated quantities when visible.")
    if options.enhance_with_nutrition:
        lines.append("Include nutritional category for each ingredient.")
    if options.language:
        lines.append(f"Write ingredient names and suggestions in {options.language}.")
    lines.append('Format: { "ingredients": [...], "suggestions": [...], "warnings": [...], "imageQuality": "..." }')
    return "\n".join(lines)


def get_recipe_system_prompt() -> str:
    """Recipe system prompt: product-insertion rules followed by the response schema."""
    return f"""{build_promotion_rules()}
You are a professional chef and recipe creator. Generate detailed, practical recipes based on provided ingredients.
Your recipes should be:
- Clear and easy to follow
- Culturally appropriate (consider East African cuisine when relevant)
- Nutritionally balanced
- Time-efficient

Respond with a JSON object that matches this structure:
{_RECIPE_SCHEMA}"""


def get_recipe_user_prompt(
    ingredients: list[str],
    preferences: Optional[RecipePreferences] = None,
    style: Optional[str] = None,
) -> str:
    lines = [f"Create a recipe using these ingredients: {', '.join(ingredients)}."]
    if preferences is not None:
        lines.append(f"Preferences: {json.dumps(preferences.to_storage())}")
    if style:
        lines.append(f"Style: {style}")
    return "\n".join(lines)


def get_image_prompt(prompt: str) -> str:
    """Embellish a dish description into a food photography prompt."""
    return (
        f"Professional food photography of {prompt}. "
        "Beautiful plating, natural lighting, appetizing, high-quality, "
        "shallow depth of field, garnished, on elegant dinnerware."
    )


def get_enhancement_prompt(title: str, ingredient_names: list[str]) -> str:
    return (
        "Enhance this recipe with additional tips, variations, and pairings:\n"
        f"Title: {title}\n"
        f"Ingredients: {', '.join(ingredient_names)}"
    )


def get_suggestions_prompt(ingredients: list[str], limit: int) -> str:
    return (
        f"Given these ingredients: {', '.join(ingredients)}, suggest {limit} recipes that can be made. "
        "Return JSON with a recipes array of objects with title and match percentage."
    )
