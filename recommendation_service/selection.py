"""
Diversity-constrained selection of scored candidates.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Set

from .config import SelectionConfig
from .exceptions import InvalidConfiguration
from .models import Recommendation, ScoredCandidate

logger = logging.getLogger(__name__)

REASON_HIGH_RELEVANCE = "high relevance"
REASON_POPULAR = "popular"
REASON_EDITORIAL = "editorial feature"
REASON_RECENT = "recent"
REASON_DEFAULT = "recommended for you"


def ranking_key(candidate: ScoredCandidate):
    """Score desc, then newest first, then ascending id."""
    published = candidate.item.published_at
    newest_first = -published.timestamp() if published is not None else float("inf")
    return (-candidate.score, newest_first, candidate.item.id)


class DiversitySelector:
    """Two-pass, category-aware selection with reason tagging."""

    def __init__(self, config: SelectionConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def select(
        self,
        candidates: Sequence[ScoredCandidate],
        min_count: int,
        max_count: int,
        used_fallback: bool = False,
    ) -> Recommendation:
        """Pick at most ``max_count`` candidates, spreading across categories.

        Raises:
            InvalidConfiguration: if ``max_count <= 0`` or ``min_count < 0``
        """
        if max_count <= 0:
            raise InvalidConfiguration("max_count must be positive", "max_count", max_count)
        if min_count < 0:
            raise InvalidConfiguration("min_count must not be negative", "min_count", min_count)
        if min_count > max_count:
            logger.warning(f"min_count {min_count} exceeds max_count {max_count}, clamping")
            min_count = max_count
        if not candidates:
            return Recommendation.empty(used_fallback=used_fallback)

        ranked = sorted(candidates, key=ranking_key)
        selected: List[ScoredCandidate] = []
        chosen: Set[int] = set()
        represented: Set[str] = set()

        # First pass: guarantee the minimum, then one per unseen category.
        for index, candidate in enumerate(ranked):
            if len(selected) >= max_count:
                break
            if (
                len(selected) < min_count
                or candidate.item.category_id not in represented
                or len(selected) < self.config.diversity_floor
            ):
                selected.append(candidate)
                chosen.add(index)
                represented.add(candidate.item.category_id)

        # Second pass: fill what is left by score alone.
        for index, candidate in enumerate(ranked):
            if len(selected) >= max_count:
                break
            if index not in chosen:
                selected.append(candidate)
                chosen.add(index)

        selected.sort(key=ranking_key)
        now = self._clock()
        selected = [
            dataclasses.replace(candidate, reasons=tuple(self.reasons_for(candidate, now)))
            for candidate in selected
        ]

        logger.debug(
            f"Selected {len(selected)} of {len(ranked)} candidates across {len(represented)} categories"
        )
        return Recommendation.from_candidates(selected, used_fallback=used_fallback)

    def reasons_for(self, candidate: ScoredCandidate, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        item = candidate.item
        reasons: List[str] = []
        if candidate.score > self.config.high_relevance_threshold:
            reasons.append(REASON_HIGH_RELEVANCE)
        if item.popularity > self.config.popular_threshold:
            reasons.append(REASON_POPULAR)
        if item.is_featured:
            reasons.append(REASON_EDITORIAL)
        if item.published_at is not None and now - item.published_at < timedelta(hours=self.config.recent_hours):
            reasons.append(REASON_RECENT)
        if not reasons:
            reasons.append(REASON_DEFAULT)
        return reasons
