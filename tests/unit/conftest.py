"""Shared fixtures for unit tests."""

import base64
import json
from unittest.mock import AsyncMock

import pytest

from pantry_ai.storage.cache import ResponseCache
from pantry_ai.storage.kv_store import InMemoryKeyValueStore
from pantry_ai.utils.config import Config


# JPEG magic bytes plus padding; enough for filetype detection
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01" + b"\x00" * 64
JPEG_BASE64 = base64.b64encode(JPEG_BYTES).decode("ascii")

STEW_RESPONSE = json.dumps(
    {
        "title": "Test Stew",
        "summary": "A hearty stew",
        "ingredients": [
            {"name": "tomatoes", "quantity": 3, "unit": "pieces"},
            {"name": "onions", "quantity": 2, "unit": "pieces"},
            {"name": "beef", "quantity": 500, "unit": "g"},
        ],
        "steps": [
            {"title": "Prep", "body": "Chop the vegetables.", "time": 10},
            {"title": "Cook", "body": "Simmer everything together.", "time": 40},
        ],
        "details": {"servings": 4, "prepTime": 10, "cookTime": 40, "difficulty": "easy"},
        "tags": ["stew"],
    }
)


@pytest.fixture
def test_config(monkeypatch):
    """Config with an OpenAI key, no retry delay and a clean environment."""
    for name in (
        "MODEL_PROVIDER",
        "FALLBACK_PROVIDER",
        "STORAGE_DIR",
        "MAX_RETRIES",
        "SINGLE_FLIGHT",
        "OPENAI_BASE_URL",
        "OPENAI_TEXT_MODEL",
        "OPENAI_VISION_MODEL",
        "OPENAI_IMAGE_MODEL",
        "GEMINI_MODEL",
        "COMPRESS_IMG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setenv("RETRY_DELAY_SECONDS", "0")
    return Config()


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(memory_store):
    return ResponseCache(memory_store)


@pytest.fixture
def fake_client():
    """ModelClient double whose methods are AsyncMocks."""
    client = AsyncMock()
    client.provider = "openai"
    client.model_name = "gpt-test"
    client.vision_model_name = "gpt-vision-test"
    client.generate_recipe.return_value = STEW_RESPONSE
    client.detect_ingredients.return_value = json.dumps(
        {
            "ingredients": [{"name": "tomato", "confidence": 0.95, "category": "vegetable"}],
            "suggestions": ["Make a salad"],
            "warnings": [],
            "imageQuality": "good",
        }
    )
    client.generate_image.return_value = "https://images.example.com/stew.png"
    return client


@pytest.fixture
def stew_response():
    return STEW_RESPONSE


@pytest.fixture
def jpeg_base64():
    return JPEG_BASE64
