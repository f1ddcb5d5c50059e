"""
Data models for the recommendation service.

Input records (Pydantic) live in ``content_models``; engine output and
bookkeeping structures (dataclasses) live in ``result_models``.
"""

from .content_models import ContentItem, ConsumerProfile, InteractionRecord
from .result_models import (
    CacheEntry,
    CacheKey,
    FeedbackEvent,
    Recommendation,
    ScoredCandidate,
    diversity_score,
)

__all__ = [
    "ContentItem",
    "ConsumerProfile",
    "InteractionRecord",
    "CacheEntry",
    "CacheKey",
    "FeedbackEvent",
    "Recommendation",
    "ScoredCandidate",
    "diversity_score",
]
