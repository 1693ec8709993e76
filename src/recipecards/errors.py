"""Exceptions raised by the recipe card pipeline."""

from typing import Any


class RecipeCardsError(Exception):
    """Base exception for pipeline errors."""


class ConfigurationError(RecipeCardsError):
    """Raised when required configuration (e.g. API credentials) is missing."""


class ExtractionError(RecipeCardsError):
    """Raised when the extraction provider fails or returns an unusable reply."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class CorrectionParseError(RecipeCardsError):
    """Raised when a correction reply cannot be parsed into a corrections list."""

    def __init__(self, message: str, content: str | None = None):
        super().__init__(message)
        self.content = content
