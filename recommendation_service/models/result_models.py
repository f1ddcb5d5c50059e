"""
Engine output and bookkeeping structures.

Unlike the input models these are produced by the engine itself, so they are
plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .content_models import ContentItem


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    """A candidate with its relevance score and the reasons shown to the reader.

    Immutable: cached recommendations hand the same instances to every caller.
    """

    item: ContentItem
    score: float
    reasons: Tuple[str, ...] = ()
    source: str = "heuristic"
    features: Optional[Tuple[float, ...]] = None

    @property
    def item_id(self) -> str:
        return self.item.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item.id,
            "category_id": self.item.category_id,
            "score": round(self.score, 6),
            "reasons": list(self.reasons),
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class Recommendation:
    """Ordered, annotated selection returned to the caller."""

    items: Tuple[ScoredCandidate, ...] = ()
    categories: FrozenSet[str] = frozenset()
    diversity_score: float = 0.0
    used_fallback: bool = False
    generated_at: datetime = field(default_factory=_utcnow)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def item_ids(self) -> List[str]:
        return [candidate.item.id for candidate in self.items]

    @classmethod
    def empty(cls, used_fallback: bool = False) -> "Recommendation":
        return cls(items=(), categories=frozenset(), used_fallback=used_fallback)

    @classmethod
    def from_candidates(
        cls, candidates: Sequence[ScoredCandidate], used_fallback: bool = False
    ) -> "Recommendation":
        items = tuple(candidates)
        return cls(
            items=items,
            categories=frozenset(c.item.category_id for c in items),
            diversity_score=diversity_score(items),
            used_fallback=used_fallback,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [candidate.to_dict() for candidate in self.items],
            "total": self.total,
            "categories": sorted(self.categories),
            "diversity_score": self.diversity_score,
            "used_fallback": self.used_fallback,
            "generated_at": self.generated_at.isoformat(),
        }


def diversity_score(candidates: Sequence[ScoredCandidate]) -> float:
    """Category and author spread of a selection, in [0, 1]."""
    if not candidates:
        return 0.0
    count = len(candidates)
    categories = {c.item.category_id for c in candidates}
    authors = {c.item.author for c in candidates if c.item.author}
    return round((len(categories) / count + len(authors) / count) * 50) / 100


@dataclass(slots=True)
class FeedbackEvent:
    """A reader accepting or rejecting a recommended item."""

    consumer_id: str
    item_id: str
    outcome: bool
    timestamp: datetime = field(default_factory=_utcnow)
    features: Optional[Tuple[float, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "consumer_id": self.consumer_id,
            "item_id": self.item_id,
            "outcome": self.outcome,
            "timestamp": self.timestamp.isoformat(),
            "features": list(self.features) if self.features is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackEvent":
        """Create FeedbackEvent from dictionary."""
        features = data.get("features")
        timestamp = data.get("timestamp")
        return cls(
            consumer_id=str(data.get("consumer_id", "")),
            item_id=str(data.get("item_id", "")),
            outcome=bool(data.get("outcome", False)),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else _utcnow(),
            features=tuple(float(v) for v in features) if features else None,
        )


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identity of a cached recommendation: who asked, about which candidates."""

    consumer_id: str
    fingerprint: str

    def __str__(self) -> str:
        return f"{self.consumer_id}:{self.fingerprint[:12]}"


@dataclass(slots=True)
class CacheEntry:
    """A published recommendation and its absolute expiry (monotonic seconds)."""

    key: CacheKey
    value: Recommendation
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
