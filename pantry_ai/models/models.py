"""Data models and schemas for the Pantry AI pipeline.

Defines Pydantic models for model-API payloads, cached results and domain
objects. All models use Pydantic v2. Python attributes are snake_case and
serialize with camelCase aliases, which is both the shape the model APIs
return and the shape persisted in storage; either form is accepted on input.

Model output is untrusted: validators coerce the loose shapes LLMs produce
("15 minutes", bare-string steps, missing confidence) and anything that still
does not fit is rejected by the parser as a ParseFailure.
"""

import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


DEFAULT_CONFIDENCE = 0.9

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _leading_number(value: Any) -> Any:
    """Extract the first number from strings like '15 minutes' or '25g'."""
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        return float(match.group()) if match else None
    return value


def _minutes(value: Any) -> Any:
    """Round numeric values (or numeric prefixes of strings) to whole units."""
    number = _leading_number(value)
    if isinstance(number, bool) or not isinstance(number, (int, float)):
        return number
    return int(round(number))


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase aliases, whitespace stripped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_storage(self) -> dict[str, Any]:
        """JSON-safe dict in the persisted (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Ingredient detection
# ============================================================================


class DetectedIngredient(CamelModel):
    """An ingredient recognized in a photo."""

    name: Annotated[str, Field(min_length=1, max_length=200)]
    confidence: Annotated[float, Field(DEFAULT_CONFIDENCE, description="0.0-1.0, defaults to 0.9 when omitted")]
    quantity: Optional[Union[float, str, Dict[str, Any]]] = None
    category: Optional[str] = None
    freshness: str = "good"

    @field_validator("confidence", mode="before")
    @classmethod
    def default_and_clamp_confidence(cls, v: Any) -> float:
        """Missing, null or zero confidence becomes 0.9; other values are clamped to [0, 1]."""
        if not v:
            return DEFAULT_CONFIDENCE
        try:
            f = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"Confidence must be numeric, got {v!r}")
        return min(max(f, 0.0), 1.0)

    @field_validator("freshness", mode="before")
    @classmethod
    def default_freshness(cls, v: Any) -> str:
        return v or "good"


class IngredientDetectionResult(CamelModel):
    """Result of analysing one image for ingredients."""

    ingredients: List[DetectedIngredient] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    image_quality: str = "good"
    processing_time_ms: Annotated[int, Field(0, ge=0)]

    @field_validator("image_quality", mode="before")
    @classmethod
    def default_image_quality(cls, v: Any) -> str:
        return v or "good"


class DetectionOptions(CamelModel):
    """Prompt options for ingredient detection."""

    enhance_with_nutrition: bool = False
    suggest_quantities: bool = False
    language: Optional[str] = None


# ============================================================================
# Recipes
# ============================================================================


class Ingredient(CamelModel):
    """A recipe ingredient line."""

    name: Annotated[str, Field(min_length=1, max_length=200)]
    quantity: Optional[Union[float, str]] = Field(None, validation_alias=AliasChoices("quantity", "qty", "amount"))
    unit: Optional[str] = None
    note: Optional[str] = None
    optional: Optional[bool] = None
    group: Optional[str] = None
    substitutions: Optional[List[str]] = None
    is_promoted_product: bool = False


class Temperature(CamelModel):
    value: float
    unit: str = "C"


class Step(CamelModel):
    """A recipe step. ``time`` is in minutes."""

    title: Optional[str] = None
    body: str = Field("", validation_alias=AliasChoices("body", "description", "text", "instruction"))
    time: Optional[int] = None
    temperature: Optional[Temperature] = None
    tips: Optional[List[str]] = None

    @field_validator("time", mode="before")
    @classmethod
    def coerce_time(cls, v: Any) -> Optional[int]:
        return _minutes(v)

    @field_validator("temperature", mode="before")
    @classmethod
    def coerce_temperature(cls, v: Any) -> Any:
        """Accept '180C' / 350 as well as {"value": 180, "unit": "C"}."""
        if isinstance(v, (int, float)):
            return {"value": v}
        if isinstance(v, str):
            number = _leading_number(v)
            if number is None:
                return None
            unit = "F" if "f" in v.lower() else "C"
            return {"value": number, "unit": unit}
        return v

    @field_validator("tips", mode="before")
    @classmethod
    def coerce_tips(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class RecipeDetails(CamelModel):
    servings: Optional[int] = None
    serving_size: Optional[str] = None
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    total_time: Optional[int] = None
    difficulty: Optional[str] = None
    cost: Optional[str] = None
    cuisine: Optional[str] = None
    equipment: Optional[List[str]] = None
    allergens: Optional[List[str]] = None
    diet_tags: Optional[List[str]] = None

    @field_validator("servings", "prep_time", "cook_time", "total_time", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Optional[int]:
        return _minutes(v)


class Nutrition(CamelModel):
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_amounts(cls, v: Any) -> Any:
        return _leading_number(v)


class Recipe(CamelModel):
    """Domain model for a recipe.

    AI recipes get ``id = ai-<epoch ms>-<9 alnum>`` at generation time; once
    persisted, ``id`` is the only lookup key.
    """

    id: Annotated[str, Field(min_length=1)]
    title: Annotated[str, Field(min_length=1, max_length=200)]
    summary: Optional[str] = None
    description: Optional[str] = None
    ingredients: List[Ingredient] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    details: RecipeDetails = Field(default_factory=RecipeDetails)
    nutrition: Optional[Nutrition] = None
    tips: List[str] = Field(default_factory=list)
    variations: List[str] = Field(default_factory=list)
    pairings: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    hero_image: Optional[str] = None
    created_by: Literal["ai", "curated", "user", "community"] = "ai"
    ai_generated: bool = False
    ai_model: Optional[str] = None
    created_at: Optional[str] = None
    time: Optional[str] = None
    difficulty: Optional[str] = None
    sponsored_products: List[str] = Field(default_factory=list)

    @field_validator("ingredients", mode="before")
    @classmethod
    def coerce_ingredients(cls, v: Any) -> Any:
        """Bare strings become Ingredient(name=...)."""
        if not isinstance(v, list):
            return v
        return [{"name": item} if isinstance(item, str) else item for item in v]

    @field_validator("steps", mode="before")
    @classmethod
    def coerce_steps(cls, v: Any) -> Any:
        """Bare strings become Step(body=...)."""
        if not isinstance(v, list):
            return v
        return [{"body": item} if isinstance(item, str) else item for item in v]

    @field_validator("tips", "variations", "pairings", "tags", mode="before")
    @classmethod
    def coerce_string_lists(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("details", mode="before")
    @classmethod
    def default_details(cls, v: Any) -> Any:
        return v if v is not None else {}


class RecipePreferences(CamelModel):
    cuisine: Optional[str] = None
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    servings: Optional[int] = Field(None, ge=1, le=100)
    max_cook_time: Optional[int] = Field(None, ge=1)
    dietary_restrictions: Optional[List[str]] = None


class RecipeGenerationRequest(CamelModel):
    """Everything that determines a generated recipe (and therefore its cache key)."""

    ingredients: Annotated[List[str], Field(min_length=1, max_length=100)]
    preferences: Optional[RecipePreferences] = None
    style: Optional[Literal["traditional", "fusion", "modern", "comfort"]] = None
    generate_images: bool = False
    image_count: Annotated[int, Field(2, ge=1, le=10)]

    @field_validator("ingredients")
    @classmethod
    def strip_empty(cls, v: List[str]) -> List[str]:
        cleaned = [item.strip() for item in v if item and item.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty ingredient is required")
        return cleaned


class RecipeGenerationResult(CamelModel):
    recipe: Recipe
    generation_time_ms: Annotated[int, Field(ge=0)]
    estimated_cost: float = 0.02


class RecipeSuggestion(CamelModel):
    title: Annotated[str, Field(min_length=1)]
    match: float = 0.0

    @field_validator("match", mode="before")
    @classmethod
    def coerce_match(cls, v: Any) -> Any:
        number = _leading_number(v)
        return 0.0 if number is None else number


class ParseFailure(BaseModel):
    """Tagged failure returned by response parsers instead of a domain object."""

    reason: str
    raw: Optional[str] = None


# ============================================================================
# Pantry
# ============================================================================


class PantryItem(CamelModel):
    """A pantry inventory item.

    ``days_until_expiry`` is derived from ``expires_on``; the remote row may
    also carry a mirrored value (``stored_days_until_expiry``) which is for
    display only and can be stale.
    """

    id: Optional[str] = None
    name: str = Field("", validation_alias=AliasChoices("name", "title"))
    quantity: Optional[float] = Field(None, validation_alias=AliasChoices("quantity", "qty"))
    unit: Optional[str] = None
    expires_on: Optional[date] = Field(None, validation_alias=AliasChoices("expiresOn", "expires_on", "expiryDate"))
    category: Optional[str] = None
    location: Optional[str] = None
    brand: Optional[str] = None
    notes: Optional[str] = None
    cost_kes: Optional[float] = None
    is_pinned: bool = False
    is_low_stock: bool = False
    stored_days_until_expiry: Optional[int] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> Any:
        return _leading_number(v)

    @field_validator("expires_on", mode="before")
    @classmethod
    def coerce_expiry(cls, v: Any) -> Any:
        """Accept full ISO timestamps as well as plain dates."""
        if isinstance(v, str) and v:
            return datetime.fromisoformat(v.replace("Z", "+00:00")).date() if "T" in v else v
        return v or None

    @field_validator("is_pinned", "is_low_stock", mode="before")
    @classmethod
    def coerce_flags(cls, v: Any) -> bool:
        return bool(v)

    def days_until_expiry(self, today: Optional[date] = None) -> Optional[int]:
        """Days from ``today`` until expiry; negative once expired, None without a date."""
        if self.expires_on is None:
            return None
        return (self.expires_on - (today or date.today())).days


class PantryStats(CamelModel):
    total_items: int = 0
    expiring_soon: int = 0
    low_stock: int = 0
    expired: int = 0
    total_value: float = 0.0
    by_category: Dict[str, int] = Field(default_factory=dict)
    most_common_category: str = "other"
