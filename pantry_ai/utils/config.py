"""Configuration management for the Pantry AI pipeline.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults

The module-level ``config`` instance is NOT validated at import time.
``create_pipeline()`` validates it once at startup so that a missing API key
surfaces as a ConfigurationError before any network call is attempted.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from pantry_ai.utils.errors import ConfigurationError


# Load .env file (if exists, silently continues if missing)
load_dotenv()


_SUPPORTED_PROVIDERS = ("openai", "gemini")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # OpenAI: chat completions (text + vision) and image generation
        self.OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        self.OPENAI_TEXT_MODEL: str = os.getenv("OPENAI_TEXT_MODEL", "gpt-4-turbo-preview")
        self.OPENAI_VISION_MODEL: str = os.getenv("OPENAI_VISION_MODEL", "gpt-4-vision-preview")
        self.OPENAI_IMAGE_MODEL: str = os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3")

        # Gemini: optional primary or fallback provider
        self.GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
        self.GEMINI_IMAGE_MODEL: str = os.getenv("GEMINI_IMAGE_MODEL", "imagen-3.0-generate-002")

        # Provider chain: MODEL_PROVIDER is tried first, FALLBACK_PROVIDER only
        # after the primary has exhausted its retries
        self.MODEL_PROVIDER: str = os.getenv("MODEL_PROVIDER", "openai").lower()
        self.FALLBACK_PROVIDER: Optional[str] = (os.getenv("FALLBACK_PROVIDER") or "").lower() or None

        # Retry policy. MAX_RETRIES is the total number of attempts per call.
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
        # Fixed delay between attempts unless EXPONENTIAL_BACKOFF is enabled
        self.RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "1.0"))
        self.EXPONENTIAL_BACKOFF: bool = _env_bool("EXPONENTIAL_BACKOFF", "false")
        self.RETRY_JITTER: bool = _env_bool("RETRY_JITTER", "false")
        # Total deadline for a single HTTP request/response cycle
        self.REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60"))

        # Cache and local storage
        self.CACHE_EXPIRY_HOURS: float = float(os.getenv("CACHE_EXPIRY_HOURS", "24"))
        # STORAGE_DIR: directory for the file-backed key/value store. Unset = in-memory.
        self.STORAGE_DIR: Optional[str] = os.getenv("STORAGE_DIR")
        # Shared deployments should surface storage failures instead of treating them as misses
        self.RAISE_ON_STORAGE_ERROR: bool = _env_bool("RAISE_ON_STORAGE_ERROR", "false")
        # Concurrent identical requests share one upstream call
        self.SINGLE_FLIGHT: bool = _env_bool("SINGLE_FLIGHT", "true")

        # Image input handling
        self.MAX_IMAGE_SIZE_MB: int = int(os.getenv("MAX_IMAGE_SIZE_MB", "5"))
        self.COMPRESS_IMG: bool = _env_bool("COMPRESS_IMG", "true")
        # Only images above this size (in KB) are re-compressed
        self.COMPRESS_IMG_THRESHOLD_KB: int = int(os.getenv("COMPRESS_IMG_THRESHOLD_KB", "300"))
        self.PLACEHOLDER_IMAGE_URL: str = os.getenv(
            "PLACEHOLDER_IMAGE_URL", "https://via.placeholder.com/1024x1024.png?text=Recipe+Image"
        )

        # Supabase (pantry service only)
        self.SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
        self.SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")

    @property
    def cache_expiry_ms(self) -> int:
        return int(self.CACHE_EXPIRY_HOURS * 60 * 60 * 1000)

    def provider_chain(self) -> list[str]:
        """Return providers in the order they should be tried."""
        chain = [self.MODEL_PROVIDER]
        if self.FALLBACK_PROVIDER and self.FALLBACK_PROVIDER != self.MODEL_PROVIDER:
            chain.append(self.FALLBACK_PROVIDER)
        return chain

    def validate(self) -> None:
        """Validate required configuration.

        Raises:
            ConfigurationError: If required API keys are missing or invalid values provided.
        """
        for provider in (self.MODEL_PROVIDER, self.FALLBACK_PROVIDER):
            if provider is not None and provider not in _SUPPORTED_PROVIDERS:
                raise ConfigurationError(
                    f"Provider must be 'openai' or 'gemini', got: {provider}"
                )
        for provider in self.provider_chain():
            if provider == "openai" and not self.OPENAI_API_KEY:
                raise ConfigurationError("OPENAI_API_KEY environment variable is required")
            if provider == "gemini" and not self.GEMINI_API_KEY:
                raise ConfigurationError("GEMINI_API_KEY environment variable is required")
        if self.MAX_RETRIES < 1:
            raise ConfigurationError(f"MAX_RETRIES must be at least 1, got: {self.MAX_RETRIES}")
        if self.RETRY_DELAY_SECONDS < 0:
            raise ConfigurationError(
                f"RETRY_DELAY_SECONDS must not be negative, got: {self.RETRY_DELAY_SECONDS}"
            )
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            raise ConfigurationError(
                f"REQUEST_TIMEOUT_SECONDS must be positive, got: {self.REQUEST_TIMEOUT_SECONDS}"
            )
        if self.CACHE_EXPIRY_HOURS <= 0:
            raise ConfigurationError(
                f"CACHE_EXPIRY_HOURS must be positive, got: {self.CACHE_EXPIRY_HOURS}"
            )
        if self.MAX_IMAGE_SIZE_MB < 1:
            raise ConfigurationError(
                f"MAX_IMAGE_SIZE_MB must be at least 1, got: {self.MAX_IMAGE_SIZE_MB}"
            )


# Module-level config instance; validated by create_pipeline()
config = Config()
