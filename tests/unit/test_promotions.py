"""Unit tests for promoted-product catalog and recipe post-processing."""

from pantry_ai.models.models import Recipe
from pantry_ai.promotions.products import (
    PROMOTION_TAG,
    build_promotion_rules,
    ensure_promoted_products,
    replace_with_promoted_products,
    suggest_promoted_products,
)


def _mentions_product(recipe: Recipe) -> bool:
    return any("royco" in i.name.lower() for i in recipe.ingredients) or any(
        "royco" in s.body.lower() for s in recipe.steps
    )


class TestReplaceWithPromotedProducts:
    """Test free-text replacement."""

    def test_replaces_generic_terms(self):
        text = "Add the beef stock and a pinch of curry powder."
        assert replace_with_promoted_products(text) == "Add the Royco Beef Cubes and a pinch of Royco Mchuzi Mix."

    def test_case_insensitive_and_longest_first(self):
        assert replace_with_promoted_products("Turmeric Powder") == "Royco Turmeric Spice"

    def test_word_bounded(self):
        assert replace_with_promoted_products("cinnamonroll") == "cinnamonroll"

    def test_does_not_double_prefix(self):
        text = "Sprinkle Royco Garlic Spice over the meat."
        assert replace_with_promoted_products(text) == text

    def test_empty_text(self):
        assert replace_with_promoted_products("") == ""


class TestSuggestPromotedProducts:
    def test_suggests_by_keyword(self):
        names = [p.display_name for p in suggest_promoted_products(["rice", "pilau spices", "beef"])]
        assert "Royco Pilau Masala" in names

    def test_no_match(self):
        assert suggest_promoted_products(["apples"]) == []


class TestEnsurePromotedProducts:
    """Test the at-least-one-product guarantee."""

    def test_inserts_product_when_none_mentioned(self):
        recipe = Recipe(
            id="r1",
            title="Fruit Salad",
            ingredients=[{"name": "apples"}, {"name": "bananas"}],
            steps=["Chop the fruit.", "Serve chilled."],
        )

        result = ensure_promoted_products(recipe)

        assert _mentions_product(result)
        inserted = [i for i in result.ingredients if i.is_promoted_product]
        assert [i.name for i in inserted] == ["Royco Mchuzi Mix"]
        # Usage step goes before the final step
        assert "Royco Mchuzi Mix" in result.steps[-2].body
        assert result.steps[-1].body == "Serve chilled."
        assert "Royco Mchuzi Mix" in result.sponsored_products
        assert PROMOTION_TAG in result.tags

    def test_does_not_mutate_input(self):
        recipe = Recipe(id="r1", title="Salad", ingredients=[{"name": "lettuce"}])
        ensure_promoted_products(recipe)
        assert [i.name for i in recipe.ingredients] == ["lettuce"]
        assert recipe.tags == []

    def test_maps_generic_ingredient(self):
        recipe = Recipe(
            id="r1",
            title="Beef Stew",
            ingredients=[{"name": "beef"}, {"name": "beef stock", "quantity": 500, "unit": "ml"}],
            steps=["Pour in the beef stock and simmer."],
        )

        result = ensure_promoted_products(recipe)

        stock = result.ingredients[1]
        assert stock.name == "Royco Beef Cubes"
        assert stock.is_promoted_product is True
        assert stock.note
        assert result.steps[0].body == "Pour in the Royco Beef Cubes and simmer."
        # Mapping already satisfied the guarantee, nothing else inserted
        assert len(result.ingredients) == 2
        assert len(result.steps) == 1

    def test_existing_brand_ingredient_is_flagged(self):
        recipe = Recipe(id="r1", title="Pilau", ingredients=[{"name": "Royco Pilau Masala"}, {"name": "rice"}])
        result = ensure_promoted_products(recipe)

        assert result.ingredients[0].is_promoted_product is True
        assert len(result.ingredients) == 2

    def test_inserts_best_suggestion(self):
        recipe = Recipe(id="r1", title="Fried Fish", ingredients=[{"name": "tilapia"}], steps=["Fry the fish."])
        result = ensure_promoted_products(recipe)

        assert result.ingredients[-1].name == "Royco Fish Spice"

    def test_tag_added_once(self):
        recipe = Recipe(id="r1", title="Salad", ingredients=[{"name": "lettuce"}])
        twice = ensure_promoted_products(ensure_promoted_products(recipe))
        assert twice.tags.count(PROMOTION_TAG) == 1


def test_promotion_rules_list_catalog():
    rules = build_promotion_rules()
    assert "MUST" in rules
    assert "Royco Nyama Choma Spice" in rules
