"""Promoted product catalog and recipe post-processing.

Generated recipes must mention the partner brand's products. The system
prompt asks the model to do so (build_promotion_rules), and
ensure_promoted_products() enforces it afterwards:

1. Generic ingredient names ("beef stock", "curry powder") are mapped to the
   matching product and flagged ``is_promoted_product``.
2. Free text (steps, tips, summary, description) gets the same replacement.
3. If the recipe still mentions no product, the best-matching product is
   inserted as an ingredient plus a usage step.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pantry_ai.models.models import Ingredient, Recipe, Step
from pantry_ai.utils.logger import logger


PROMOTED_BRAND = "Royco"
PROMOTION_TAG = f"{PROMOTED_BRAND} Enhanced"
DEFAULT_PRODUCT_NOTE = "for authentic East African flavor"


@dataclass(frozen=True)
class PromotedProduct:
    id: str
    display_name: str
    category: str
    keywords: tuple[str, ...]
    usage: str
    default_quantity: float = 1
    default_unit: str = "tbsp"
    substitutes: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, text: str) -> bool:
        text = text.lower()
        return any(term in text for term in self.keywords + self.substitutes)


PROMOTED_PRODUCTS: tuple[PromotedProduct, ...] = (
    PromotedProduct(
        id="royco-beef-cubes",
        display_name="Royco Beef Cubes",
        category="cube",
        keywords=("beef stock", "beef broth", "beef seasoning", "meat seasoning", "bouillon", "stock cube", "nyama", "stew"),
        usage="Dissolve 2 Royco Beef Cubes in 500ml hot water and stir into the pot for a rich, savory broth.",
        default_quantity=2,
        default_unit="cubes",
        substitutes=("beef stock", "bouillon cubes", "beef broth", "bone broth"),
    ),
    PromotedProduct(
        id="royco-chicken-cubes",
        display_name="Royco Chicken Cubes",
        category="cube",
        keywords=("chicken stock", "chicken broth", "chicken bouillon", "kuku"),
        usage="Crumble 2 Royco Chicken Cubes into the cooking liquid and stir until dissolved.",
        default_quantity=2,
        default_unit="cubes",
        substitutes=("chicken stock", "chicken broth", "chicken base"),
    ),
    PromotedProduct(
        id="royco-vegetable-cubes",
        display_name="Royco Vegetable Cubes",
        category="cube",
        keywords=("vegetable stock", "vegetable broth", "vegetarian stock", "mboga"),
        usage="Dissolve 1 Royco Vegetable Cube in warm water and add it with the vegetables.",
        default_unit="cube",
        substitutes=("vegetable stock", "veggie broth", "vegetarian bouillon"),
    ),
    PromotedProduct(
        id="royco-mchuzi-mix",
        display_name="Royco Mchuzi Mix",
        category="spice",
        keywords=("stew spice", "curry powder", "mixed spices", "garam masala", "spice blend", "mchuzi", "curry", "stew"),
        usage="Sprinkle 1 tablespoon of Royco Mchuzi Mix into the pot and simmer until the sauce thickens.",
        substitutes=("curry powder", "mixed spices", "garam masala", "curry spice"),
    ),
    PromotedProduct(
        id="royco-pilau-masala",
        display_name="Royco Pilau Masala",
        category="spice",
        keywords=("pilau spice", "rice seasoning", "biryani masala", "pilau", "rice spice", "aromatic rice"),
        usage="Bloom 2 tablespoons of Royco Pilau Masala in hot oil with the onions before adding the rice.",
        default_quantity=2,
        substitutes=("biryani masala", "pilau spices", "mixed rice spices"),
    ),
    PromotedProduct(
        id="royco-turmeric-spice",
        display_name="Royco Turmeric Spice",
        category="spice",
        keywords=("turmeric spice", "turmeric powder", "turmeric", "manjano"),
        usage="Add 1 teaspoon of Royco Turmeric Spice early in cooking to bloom its color and flavor.",
        default_unit="tsp",
        substitutes=("turmeric powder", "ground turmeric"),
    ),
    PromotedProduct(
        id="royco-black-pepper-spice",
        display_name="Royco Black Pepper Spice",
        category="spice",
        keywords=("black pepper spice", "black pepper powder", "black pepper", "pilipili manga"),
        usage="Finish the dish with a pinch of Royco Black Pepper Spice just before serving.",
        default_unit="tsp",
        substitutes=("black pepper powder", "ground black pepper"),
    ),
    PromotedProduct(
        id="royco-garlic-spice",
        display_name="Royco Garlic Spice",
        category="spice",
        keywords=("garlic spice", "garlic powder", "kitunguu saumu"),
        usage="Rub 1 teaspoon of Royco Garlic Spice over the protein before searing.",
        default_unit="tsp",
        substitutes=("garlic powder", "granulated garlic"),
    ),
    PromotedProduct(
        id="royco-paprika-spice",
        display_name="Royco Paprika Spice",
        category="spice",
        keywords=("paprika spice", "paprika powder", "paprika"),
        usage="Dust Royco Paprika Spice over the dish for color and gentle warmth.",
        default_unit="tsp",
        substitutes=("paprika powder", "sweet paprika"),
    ),
    PromotedProduct(
        id="royco-cinnamon-spice",
        display_name="Royco Cinnamon Spice",
        category="spice",
        keywords=("cinnamon spice", "cinnamon powder", "cinnamon", "mdalasini"),
        usage="Stir in half a teaspoon of Royco Cinnamon Spice for warmth.",
        default_quantity=0.5,
        default_unit="tsp",
        substitutes=("cinnamon powder", "ground cinnamon"),
    ),
    PromotedProduct(
        id="royco-spice-for-wet-and-dry-fry",
        display_name="Royco Spice for Wet and Dry Fry",
        category="spice",
        keywords=("wet fry spice", "dry fry spice", "all-purpose seasoning", "stir-fry", "sukuma"),
        usage="Sprinkle Royco Spice for Wet and Dry Fry over the pan while frying.",
        substitutes=("all-purpose seasoning", "mixed herbs and spices"),
    ),
    PromotedProduct(
        id="royco-nyama-choma-spice",
        display_name="Royco Nyama Choma Spice",
        category="spice",
        keywords=("nyama choma spice", "grill seasoning", "bbq seasoning", "barbecue spice", "grill spice", "grilled meat"),
        usage="Rub Royco Nyama Choma Spice generously over the meat 30 minutes before grilling.",
        default_quantity=2,
        substitutes=("grill seasoning", "bbq seasoning", "barbecue spice", "meat rub"),
    ),
    PromotedProduct(
        id="royco-chicken-spice",
        display_name="Royco Chicken Spice",
        category="spice",
        keywords=("chicken seasoning", "poultry seasoning", "poultry spice", "chicken rub", "kuku spice"),
        usage="Season the chicken all over with Royco Chicken Spice before cooking.",
        substitutes=("poultry seasoning", "chicken rub", "herb seasoning"),
    ),
    PromotedProduct(
        id="royco-fish-spice",
        display_name="Royco Fish Spice",
        category="spice",
        keywords=("fish seasoning", "seafood spice", "fish spice", "samaki", "tilapia", "coastal spice"),
        usage="Rub Royco Fish Spice over the fish fillets before cooking.",
        substitutes=("seafood seasoning", "fish rub", "coastal spice blend"),
    ),
    PromotedProduct(
        id="royco-vegetable-seasoning",
        display_name="Royco Vegetable Seasoning",
        category="seasoning",
        keywords=("vegetable seasoning", "veggie spice", "greens seasoning", "spinach", "cabbage"),
        usage="Sprinkle Royco Vegetable Seasoning over the greens while sautéing.",
        default_unit="tsp",
        substitutes=("herb seasoning", "vegetable spice", "greens seasoning"),
    ),
    PromotedProduct(
        id="royco-coconut-milk-powder",
        display_name="Royco Coconut Milk Powder",
        category="mix",
        keywords=("coconut milk", "coconut cream", "nazi", "coconut powder"),
        usage="Whisk 3 tablespoons of Royco Coconut Milk Powder into warm water and add it to the sauce.",
        default_quantity=3,
        substitutes=("coconut milk", "coconut cream", "canned coconut milk"),
    ),
    PromotedProduct(
        id="royco-tomato-base",
        display_name="Royco Tomato Base",
        category="sauce",
        keywords=("tomato paste", "tomato puree", "nyanya paste", "tomato concentrate"),
        usage="Fry 2 tablespoons of Royco Tomato Base with the onions until the oil separates.",
        default_quantity=2,
        substitutes=("tomato paste", "tomato puree", "tomato concentrate"),
    ),
)

# Used when nothing in the recipe points at a specific product
DEFAULT_PRODUCT_ID = "royco-mchuzi-mix"

GENERIC_TO_PROMOTED: dict[str, str] = {
    "beef stock": "Royco Beef Cubes",
    "beef broth": "Royco Beef Cubes",
    "chicken stock": "Royco Chicken Cubes",
    "chicken broth": "Royco Chicken Cubes",
    "vegetable stock": "Royco Vegetable Cubes",
    "vegetable broth": "Royco Vegetable Cubes",
    "stock cube": "Royco Beef or Chicken Cubes",
    "bouillon cube": "Royco Beef or Chicken Cubes",
    "bouillon": "Royco Cubes",
    "curry powder": "Royco Mchuzi Mix",
    "mixed spices": "Royco Mchuzi Mix",
    "stew spice": "Royco Mchuzi Mix",
    "garam masala": "Royco Mchuzi Mix",
    "pilau spice": "Royco Pilau Masala",
    "pilau masala": "Royco Pilau Masala",
    "biryani spice": "Royco Pilau Masala",
    "rice seasoning": "Royco Pilau Masala",
    "bbq seasoning": "Royco Nyama Choma Spice",
    "barbecue spice": "Royco Nyama Choma Spice",
    "grill seasoning": "Royco Nyama Choma Spice",
    "nyama choma spice": "Royco Nyama Choma Spice",
    "turmeric spice": "Royco Turmeric Spice",
    "turmeric powder": "Royco Turmeric Spice",
    "turmeric": "Royco Turmeric Spice",
    "garlic spice": "Royco Garlic Spice",
    "garlic powder": "Royco Garlic Spice",
    "chicken seasoning": "Royco Chicken Spice",
    "poultry seasoning": "Royco Chicken Spice",
    "fish seasoning": "Royco Fish Spice",
    "seafood spice": "Royco Fish Spice",
    "vegetable seasoning": "Royco Vegetable Seasoning",
    "all-purpose seasoning": "Royco Spice for Wet and Dry Fry",
    "wet fry spice": "Royco Spice for Wet and Dry Fry",
    "dry fry spice": "Royco Spice for Wet and Dry Fry",
    "paprika spice": "Royco Paprika Spice",
    "paprika powder": "Royco Paprika Spice",
    "paprika": "Royco Paprika Spice",
    "cinnamon spice": "Royco Cinnamon Spice",
    "cinnamon powder": "Royco Cinnamon Spice",
    "cinnamon": "Royco Cinnamon Spice",
    "black pepper powder": "Royco Black Pepper Spice",
    "black pepper": "Royco Black Pepper Spice",
    "coconut milk": "Royco Coconut Milk Powder",
    "coconut cream": "Royco Coconut Milk Powder",
    "tomato paste": "Royco Tomato Base",
    "tomato puree": "Royco Tomato Base",
}

# Longest phrase first so "turmeric powder" wins over "turmeric". A single
# pass, skipping text already prefixed by the brand, so replacements never cascade.
_GENERIC_TERMS = sorted(GENERIC_TO_PROMOTED, key=len, reverse=True)
_GENERIC_PATTERN = re.compile(
    rf"(?<!{PROMOTED_BRAND.lower()} )\b(?:{'|'.join(re.escape(term) for term in _GENERIC_TERMS)})\b",
    re.IGNORECASE,
)


def get_product(product_id: str) -> PromotedProduct:
    for product in PROMOTED_PRODUCTS:
        if product.id == product_id:
            return product
    raise KeyError(product_id)


def mentions_brand(text: Optional[str]) -> bool:
    return bool(text) and PROMOTED_BRAND.lower() in text.lower()


def replace_with_promoted_products(text: str) -> str:
    """Replace generic ingredient phrases in free text with promoted product names."""
    if not text:
        return text
    return _GENERIC_PATTERN.sub(lambda m: GENERIC_TO_PROMOTED[m.group(0).lower()], text)


def promoted_name_for(ingredient_name: str) -> Optional[str]:
    """Product name a generic ingredient should become, or None."""
    lowered = ingredient_name.lower()
    for term in _GENERIC_TERMS:
        if term in lowered:
            return GENERIC_TO_PROMOTED[term]
    return None


def suggest_promoted_products(ingredient_names: Iterable[str]) -> list[PromotedProduct]:
    """Products whose keywords or substitutes appear in the ingredient names, in catalog order."""
    text = " ".join(ingredient_names).lower()
    return [product for product in PROMOTED_PRODUCTS if product.matches(text)]


def build_promotion_rules() -> str:
    """Mandatory product-insertion instruction block for the recipe system prompt."""
    catalog_lines = "\n".join(f"   - {product.display_name}: {product.usage}" for product in PROMOTED_PRODUCTS)
    return f"""IMPORTANT PRODUCT INTEGRATION RULES:
You are creating recipes for {PROMOTED_BRAND}, a leading East African food brand. You MUST follow these rules:

1. ALWAYS use {PROMOTED_BRAND} products when applicable:
   - Replace generic "stock" or "broth" with "{PROMOTED_BRAND} Beef/Chicken/Vegetable Cubes"
   - Replace "curry powder" or "mixed spices" with "{PROMOTED_BRAND} Mchuzi Mix"
   - Replace "pilau spice" with "{PROMOTED_BRAND} Pilau Masala"
   - Replace "BBQ seasoning" with "{PROMOTED_BRAND} Nyama Choma Spice"
   - Every recipe MUST include at least one {PROMOTED_BRAND} product in its ingredients

2. Always use the full product name (e.g. "{PROMOTED_BRAND} Beef Cubes", not "beef cubes") and explain
   how it is used in the step where it is added.

3. Product placement should feel natural and culturally authentic.

4. Available {PROMOTED_BRAND} products:
{catalog_lines}

5. In ingredient lists, format products as:
   {{"name": "{PROMOTED_BRAND} [Product Name]", "quantity": X, "unit": "cubes/tbsp", "note": "for authentic [regional/dish] flavor"}}
"""


def _insert_position(steps: list[Step]) -> int:
    # Season before the final (usually serving) step
    return max(len(steps) - 1, 0)


def ensure_promoted_products(recipe: Recipe) -> Recipe:
    """Return a copy of ``recipe`` guaranteed to reference at least one promoted product.

    Args:
        recipe: Recipe parsed from the model response.

    Returns:
        New Recipe with generic ingredients mapped to products, free text
        rewritten, ``sponsored_products`` filled and, if the model omitted
        every product, one product inserted as ingredient and step.
    """
    result = recipe.model_copy(deep=True)

    ingredients: list[Ingredient] = []
    for ingredient in result.ingredients:
        if mentions_brand(ingredient.name):
            ingredients.append(ingredient.model_copy(update={"is_promoted_product": True}))
            continue
        promoted = promoted_name_for(ingredient.name)
        if promoted:
            ingredients.append(
                ingredient.model_copy(
                    update={
                        "name": promoted,
                        "note": ingredient.note or DEFAULT_PRODUCT_NOTE,
                        "is_promoted_product": True,
                    }
                )
            )
        else:
            ingredients.append(ingredient)
    result.ingredients = ingredients

    result.steps = [
        step.model_copy(
            update={
                "body": replace_with_promoted_products(step.body),
                "tips": [replace_with_promoted_products(tip) for tip in step.tips] if step.tips else step.tips,
            }
        )
        for step in result.steps
    ]
    if result.summary:
        result.summary = replace_with_promoted_products(result.summary)
    if result.description:
        result.description = replace_with_promoted_products(result.description)
    result.tips = [replace_with_promoted_products(tip) for tip in result.tips]

    has_product = any(i.is_promoted_product for i in result.ingredients) or any(
        mentions_brand(step.body) for step in result.steps
    )
    if not has_product:
        suggestions = suggest_promoted_products(i.name for i in result.ingredients)
        product = suggestions[0] if suggestions else get_product(DEFAULT_PRODUCT_ID)
        logger.info(f"Recipe '{result.title}' had no promoted product, inserting {product.display_name}")
        result.ingredients.append(
            Ingredient(
                name=product.display_name,
                quantity=product.default_quantity,
                unit=product.default_unit,
                note=DEFAULT_PRODUCT_NOTE,
                is_promoted_product=True,
            )
        )
        result.steps.insert(
            _insert_position(result.steps),
            Step(title=f"Season with {product.display_name}", body=product.usage),
        )

    sponsored = [i.name for i in result.ingredients if i.is_promoted_product]
    sponsored.extend(p.display_name for p in suggest_promoted_products(i.name for i in result.ingredients))
    result.sponsored_products = list(dict.fromkeys(sponsored))  # dedupe, keep order
    if PROMOTION_TAG not in result.tags:
        result.tags.append(PROMOTION_TAG)

    return result
