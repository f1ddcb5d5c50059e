"""
Feature extraction for items and consumers.

Both extractors are pure: the same item (or profile), reference time and seed
always produce the same vector. The jitter slot is drawn from a generator
seeded with (seed, subject id), so it breaks exact ties without making runs
irreproducible.
"""

from __future__ import annotations

import logging
import math
import zlib
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional

import numpy as np

from .config import CORE_FEATURE_COUNT, FeatureConfig
from .exceptions import FeatureExtractionError
from .models import ContentItem, ConsumerProfile

logger = logging.getLogger(__name__)

FeatureVector = np.ndarray

SECONDS_PER_DAY = 86400.0

# Item vector layout.
ITEM_POPULARITY = 0
ITEM_FEATURED = 1
ITEM_CATEGORY_INDEX = 2
ITEM_CONTENT_LENGTH = 3
ITEM_RECENCY = 4
ITEM_CATEGORY_WEIGHT = 5
ITEM_EXCERPT = 6
ITEM_IMAGE = 7
ITEM_TAGS = 8
ITEM_JITTER = 9

ANONYMOUS_CONSUMER = "anonymous"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _capped_ratio(value: float, ceiling: float) -> float:
    if value <= 0:
        return 0.0
    return min(value / ceiling, 1.0)


class FeatureExtractor:
    """Turns content items and consumer profiles into fixed-length vectors."""

    def __init__(self, config: FeatureConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.length = config.feature_length
        self._clock = clock or _utcnow
        self._category_positions = {
            str(category): position for position, category in enumerate(config.category_order, start=1)
        }

    @property
    def share_slots(self) -> slice:
        """Consumer slots holding category interaction shares."""
        return slice(0, self.config.top_categories)

    def jitter(self, subject_id: str) -> float:
        """Deterministic pseudo-random value in [0, jitter_scale) for a subject."""
        rng = np.random.default_rng([self.config.seed, zlib.crc32(subject_id.encode("utf-8"))])
        return float(rng.random() * self.config.jitter_scale)

    # Items --------------------------------------------------------------------

    def extract_item_features(self, item: ContentItem, now: Optional[datetime] = None) -> FeatureVector:
        """Encode a content item. Missing or malformed attributes count as zero."""
        now = now or self._clock()
        try:
            features = np.zeros(self.length, dtype=np.float64)
            features[ITEM_POPULARITY] = _capped_ratio(float(item.popularity or 0), self.config.popularity_ceiling)
            features[ITEM_FEATURED] = 1.0 if item.is_featured else 0.0
            features[ITEM_CATEGORY_INDEX] = self._category_index(item.category_id)
            features[ITEM_CONTENT_LENGTH] = _capped_ratio(
                float(item.content_length or 0), self.config.content_length_ceiling
            )
            features[ITEM_RECENCY] = self._recency(item.published_at, now)
            features[ITEM_CATEGORY_WEIGHT] = self._category_weight(item)
            features[ITEM_EXCERPT] = self._excerpt_signal(item.excerpt)
            features[ITEM_IMAGE] = 1.0 if item.has_image else 0.0
            features[ITEM_TAGS] = _capped_ratio(float(len(item.tags or [])), self.config.tag_count_ceiling)
            features[ITEM_JITTER] = self.jitter(str(item.id))
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            raise FeatureExtractionError(f"Cannot encode item: {e}", getattr(item, "id", None)) from e
        return features

    def default_item_features(self, item_id: str = "") -> FeatureVector:
        """Vector used in place of an item that could not be encoded."""
        features = np.zeros(self.length, dtype=np.float64)
        features[ITEM_CATEGORY_WEIGHT] = self.config.default_category_weight
        features[ITEM_JITTER] = self.jitter(item_id)
        return features

    def _category_index(self, category_id: str) -> float:
        if not category_id:
            return 0.0
        if category_id.isdecimal():
            return min(int(category_id) / self.config.category_slots, 1.0)
        position = self._category_positions.get(category_id)
        if position is None:
            return 0.0
        return min(position / self.config.category_slots, 1.0)

    def _category_weight(self, item: ContentItem) -> float:
        weights = self.config.category_weights
        for key in (item.category_slug, item.category_id):
            if key and key in weights:
                return float(weights[key])
        return self.config.default_category_weight

    def _recency(self, published_at: Optional[datetime], now: datetime) -> float:
        if published_at is None:
            return 0.0
        days = max((now - published_at).total_seconds() / SECONDS_PER_DAY, 0.0)
        return math.exp(-days / self.config.recency_decay_days)

    @staticmethod
    def _excerpt_signal(excerpt: Optional[str]) -> float:
        if not excerpt:
            return 0.0
        return 1.0 if len(excerpt) > 50 else 0.5

    # Consumers ----------------------------------------------------------------

    def extract_consumer_features(
        self, profile: Optional[ConsumerProfile], now: Optional[datetime] = None
    ) -> FeatureVector:
        """Encode a consumer's interaction history.

        A missing or empty profile yields the low-information default vector
        rather than an error: no history is a normal state for new readers.
        """
        if profile is None or not profile.interactions:
            consumer_id = profile.consumer_id if profile is not None else None
            logger.debug(f"No history for {consumer_id or ANONYMOUS_CONSUMER}, using default consumer vector")
            return self.default_consumer_features(consumer_id)

        now = now or self._clock()
        try:
            interactions = profile.interactions
            total = len(interactions)
            top = self.config.top_categories
            features = np.zeros(self.length, dtype=np.float64)

            counts = Counter(record.category_id or "" for record in interactions)
            ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
            for slot, (_, count) in enumerate(ranked[:top]):
                features[slot] = count / total

            recent_cutoff = self.config.recent_activity_days * SECONDS_PER_DAY
            recent = sum(
                1 for record in interactions
                if record.timestamp is not None
                and 0 <= (now - record.timestamp).total_seconds() < recent_cutoff
            )
            mean_strength = sum(float(record.strength) for record in interactions) / total

            features[top] = _capped_ratio(total, self.config.engagement_ceiling)
            features[top + 1] = recent / total
            features[top + 2] = min(max(mean_strength, 0.0), 1.0)
            features[top + 3] = _capped_ratio(total, self.config.activity_ceiling)
            features[top + 4] = self.jitter(profile.consumer_id or ANONYMOUS_CONSUMER)
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            raise FeatureExtractionError(f"Cannot encode profile: {e}", profile.consumer_id) from e
        return features

    def default_consumer_features(self, consumer_id: Optional[str] = None) -> FeatureVector:
        """Small seeded noise in every defined slot, zeros in reserved ones."""
        rng = np.random.default_rng(
            [self.config.seed, zlib.crc32((consumer_id or ANONYMOUS_CONSUMER).encode("utf-8"))]
        )
        features = np.zeros(self.length, dtype=np.float64)
        features[:CORE_FEATURE_COUNT] = rng.random(CORE_FEATURE_COUNT) * self.config.jitter_scale
        return features
