"""
Scoring profile for compiled publication runs (e-paper editions).

Editions are not personalized: articles are ranked by freshness within the
week, the editor's category priority, engagement and content quality.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .config import EditionConfig
from .models import ContentItem, ScoredCandidate
from .scoring import clamp_score

SOURCE_EDITION = "edition"

SECONDS_PER_HOUR = 3600.0


def content_quality(item: ContentItem) -> float:
    """Length band, lead image, rich excerpt, byline and category, capped at 1."""
    score = 0.0
    if 500 <= item.content_length <= 2000:
        score += 0.3
    elif item.content_length > 200:
        score += 0.1
    if item.has_image:
        score += 0.3
    if item.excerpt and len(item.excerpt) > 50:
        score += 0.2
    if item.author:
        score += 0.1
    if item.category_id:
        score += 0.1
    return min(1.0, score)


class EditionScorer:
    """Scores articles for inclusion in a publication run."""

    def __init__(self, config: EditionConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # Priority contributes at most 1; normalizing by the weight total keeps scores in [0, 1].
        self._max_raw = config.recency_weight + 1.0 + config.engagement_weight + config.quality_weight

    def score(
        self,
        item: ContentItem,
        category_priority: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> ScoredCandidate:
        now = now or self._clock()
        raw = self.recency(item, now) * self.config.recency_weight
        raw += self.priority(item, category_priority)
        raw += min(1.0, item.popularity / self.config.engagement_ceiling) * self.config.engagement_weight
        raw += content_quality(item) * self.config.quality_weight
        score = clamp_score(raw / self._max_raw) if self._max_raw > 0 else 0.0
        return ScoredCandidate(item=item, score=score, source=SOURCE_EDITION)

    def score_all(
        self, items: Sequence[ContentItem], category_priority: Sequence[str] = ()
    ) -> List[ScoredCandidate]:
        now = self._clock()
        priority = [str(category) for category in category_priority]
        return [self.score(item, priority, now) for item in items]

    def recency(self, item: ContentItem, now: datetime) -> float:
        if item.published_at is None:
            return 0.0
        hours = (now - item.published_at).total_seconds() / SECONDS_PER_HOUR
        return min(1.0, max(0.0, 1.0 - hours / self.config.recency_window_hours))

    @staticmethod
    def priority(item: ContentItem, category_priority: Sequence[str]) -> float:
        """Earlier categories in the editor's list weigh more; unlisted ones zero."""
        if not category_priority:
            return 0.0
        for key in (item.category_slug, item.category_id):
            if key and key in category_priority:
                index = list(category_priority).index(key)
                return (len(category_priority) - index) / len(category_priority)
        return 0.0
