"""Unit tests for model response parsing."""

import json
import re

import pytest

from pantry_ai.clients.parsing import (
    chat_content,
    extract_json_object,
    parse_detection_payload,
    parse_enhancement_payload,
    parse_recipe_payload,
    parse_suggestions_payload,
)
from pantry_ai.models.models import IngredientDetectionResult, ParseFailure, Recipe
from pantry_ai.utils.errors import ResponseParseError


class TestExtractJsonObject:
    """Test lenient JSON extraction."""

    def test_direct_json(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nEnjoy!'
        assert extract_json_object(text) == {"a": 1}

    def test_embedded_object(self):
        assert extract_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2, 3]", "{broken"])
    def test_returns_none_without_object(self, text):
        assert extract_json_object(text) is None


class TestChatContent:
    def test_extracts_message_content(self):
        assert chat_content({"choices": [{"message": {"content": "hi"}}]}) == "hi"

    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{"message": {"content": None}}]}, None])
    def test_bad_shape_raises(self, body):
        with pytest.raises(ResponseParseError):
            chat_content(body)


class TestParseDetectionPayload:
    """Test vision response parsing."""

    def test_valid_payload(self):
        text = json.dumps(
            {
                "ingredients": [
                    {"name": "tomato", "confidence": 0.95},
                    {"name": "onion"},
                    {"confidence": 0.5},
                    "garlic",
                ],
                "suggestions": ["Soup"],
                "imageQuality": "excellent",
            }
        )

        result = parse_detection_payload(text, processing_time_ms=120)

        assert isinstance(result, IngredientDetectionResult)
        assert [i.name for i in result.ingredients] == ["tomato", "onion", "garlic"]
        assert result.ingredients[1].confidence == 0.9
        assert result.image_quality == "excellent"
        assert result.warnings == []
        assert result.processing_time_ms == 120

    def test_unparseable_text(self):
        result = parse_detection_payload("I see some tomatoes!")
        assert isinstance(result, ParseFailure)
        assert result.raw == "I see some tomatoes!"

    def test_missing_ingredients_list(self):
        assert isinstance(parse_detection_payload('{"suggestions": []}'), ParseFailure)


class TestParseRecipePayload:
    """Test recipe response parsing and provenance."""

    def test_assigns_provenance(self, stew_response):
        recipe = parse_recipe_payload(stew_response, "gpt-test", now_ms=1_700_000_000_000)

        assert isinstance(recipe, Recipe)
        assert recipe.title == "Test Stew"
        assert re.fullmatch(r"ai-1700000000000-[a-z0-9]{9}", recipe.id)
        assert recipe.created_by == "ai"
        assert recipe.ai_generated is True
        assert recipe.ai_model == "gpt-test"
        assert recipe.created_at == "2023-11-14T22:13:20Z"

    def test_display_time_and_difficulty(self, stew_response):
        recipe = parse_recipe_payload(stew_response, "gpt-test")
        assert recipe.time == "40 min"
        assert recipe.difficulty == "easy"

    def test_display_defaults(self):
        recipe = parse_recipe_payload('{"title": "Plain Rice"}', "gpt-test")
        assert recipe.time == "30 min"
        assert recipe.difficulty == "medium"

    def test_total_time_preferred(self):
        recipe = parse_recipe_payload('{"title": "Rice", "details": {"totalTime": 55, "cookTime": 20}}')
        assert recipe.time == "55 min"

    def test_model_supplied_id_is_replaced(self):
        recipe = parse_recipe_payload('{"id": "unique-id", "title": "Rice", "createdBy": "user"}')
        assert recipe.id.startswith("ai-")
        assert recipe.created_by == "ai"

    @pytest.mark.parametrize("text", ["not json", '{"summary": "no title"}', '{"title": ""}'])
    def test_invalid_payload_is_parse_failure(self, text):
        assert isinstance(parse_recipe_payload(text), ParseFailure)


class TestEnhancementAndSuggestions:
    def test_enhancement_keeps_present_lists(self):
        result = parse_enhancement_payload('{"tips": ["Rest the meat"], "pairings": "wine"}')
        assert result == {"tips": ["Rest the meat"]}

    def test_suggestions_from_object(self):
        result = parse_suggestions_payload('{"recipes": [{"title": "Pilau", "match": 90}, {"match": 10}]}')
        assert [s.title for s in result] == ["Pilau"]

    def test_suggestions_from_bare_array(self):
        result = parse_suggestions_payload('[{"title": "Ugali", "match": "70%"}]')
        assert result[0].match == 70

    def test_suggestions_failure(self):
        assert isinstance(parse_suggestions_payload('{"other": 1}'), ParseFailure)
