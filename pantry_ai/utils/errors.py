"""Error taxonomy for the Pantry AI pipeline.

- ConfigurationError: fatal, raised before any I/O, never retried
- ModelAPIError: transient network/HTTP failure, retried by the retry policy
- ResponseParseError: the model answered but the payload is unusable, not retried
- InvalidImageError: caller supplied an image we cannot send, not retried
- StorageError: cache/store failure, only raised in strict storage mode
- NotAuthenticatedError: pantry operation without a user id
"""

from typing import Optional


class PantryAIError(Exception):
    """Base class for all errors raised by pantry_ai."""


class ConfigurationError(PantryAIError, ValueError):
    """Missing or invalid configuration (e.g. no API key)."""


class ModelAPIError(PantryAIError):
    """External model endpoint failed or returned a non-2xx status."""

    def __init__(self, message: str, status: Optional[int] = None, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.provider = provider


class ResponseParseError(PantryAIError, ValueError):
    """Model response could not be parsed into the expected domain shape."""


class InvalidImageError(PantryAIError, ValueError):
    """Image input is not decodable, not a supported format, or too large."""


class StorageError(PantryAIError):
    """Key/value storage read or write failed."""


class NotAuthenticatedError(PantryAIError):
    """Pantry operation attempted without an authenticated user."""


# Errors that must surface immediately instead of being retried
NON_RETRYABLE_ERRORS = (ConfigurationError, InvalidImageError, ResponseParseError)
