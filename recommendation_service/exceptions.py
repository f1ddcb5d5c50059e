"""Exceptions raised by the scoring and selection engine."""

from typing import Any, Optional


class RecommendationError(Exception):
    """Base class for recommendation engine errors."""


class InvalidConfiguration(RecommendationError):
    """
    Raised when the engine is constructed or called with unusable settings.

    Attributes:
        message: Error description
        setting: Name of the offending setting, if known
        value: The rejected value
    """

    def __init__(self, message: str, setting: Optional[str] = None, value: Any = None):
        self.message = message
        self.setting = setting
        self.value = value
        if setting is not None:
            message = f"{message} ({setting}={value!r})"
        super().__init__(message)


class ModelUnavailable(RecommendationError):
    """Raised when the relevance model cannot be loaded or evaluated."""

    def __init__(self, message: str, model_path: Optional[str] = None):
        self.message = message
        self.model_path = model_path
        if model_path:
            message = f"{message} [model_path={model_path}]"
        super().__init__(message)


class FeatureExtractionError(RecommendationError):
    """Raised when a feature vector cannot be built for an item or profile."""

    def __init__(self, message: str, subject_id: Optional[str] = None):
        self.message = message
        self.subject_id = subject_id
        if subject_id is not None:
            message = f"{message} (id={subject_id})"
        super().__init__(message)


class CacheComputationError(RecommendationError):
    """
    Raised to every caller waiting on a cache key whose computation failed.

    The failed result is never cached, so the next call for the key retries.
    """

    def __init__(self, key: Any, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(f"Computation for cache key {key} failed: {cause}")
