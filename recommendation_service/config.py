"""
Typed engine settings, one dataclass per component.

``config_manager.ConfigManager`` fills these from defaults, a JSON file and
environment variables; hosts may also build them directly.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import InvalidConfiguration

# Number of signals the feature extractor defines per vector.
CORE_FEATURE_COUNT = 10


@dataclass
class FeatureConfig:
    """Feature extraction settings."""
    feature_length: int = CORE_FEATURE_COUNT
    popularity_ceiling: float = 1000.0
    content_length_ceiling: float = 5000.0
    tag_count_ceiling: float = 5.0
    recency_decay_days: float = 7.0
    category_slots: int = 10
    category_order: List[str] = field(default_factory=list)
    category_weights: Dict[str, float] = field(default_factory=lambda: {
        "national": 0.9,
        "international": 0.8,
        "sports": 0.7,
        "economy": 0.6,
        "islamic-life": 0.5,
    })
    default_category_weight: float = 0.5
    top_categories: int = 5
    engagement_ceiling: float = 50.0
    activity_ceiling: float = 100.0
    recent_activity_days: float = 7.0
    jitter_scale: float = 0.1
    seed: int = 42


@dataclass
class ScoringConfig:
    """Model and heuristic scoring settings."""
    model_path: Optional[str] = None
    max_workers: int = 4
    popularity_cap: float = 0.3
    recency_cap: float = 0.3
    recency_window_days: float = 30.0
    featured_bonus: float = 0.2
    affinity_weight: float = 0.2


@dataclass
class SelectionConfig:
    """Diversity selection and reason-tag settings."""
    min_count: int = 3
    max_count: int = 10
    diversity_floor: int = 3
    high_relevance_threshold: float = 0.8
    popular_threshold: int = 500
    recent_hours: float = 24.0


@dataclass
class CacheConfig:
    """Recommendation cache settings."""
    ttl_seconds: float = 300.0
    max_workers: int = 2


@dataclass
class FeedbackConfig:
    """Feedback log settings."""
    capacity: int = 1000
    persistence_file: Optional[str] = None
    flush_every: int = 20
    served_feature_capacity: int = 5000


@dataclass
class EditionConfig:
    """Scoring profile for compiled publication runs."""
    recency_window_hours: float = 168.0
    recency_weight: float = 0.8
    engagement_weight: float = 0.6
    quality_weight: float = 0.5
    engagement_ceiling: float = 1000.0
    min_count: int = 8
    max_count: int = 12


@dataclass
class EngineConfig:
    """Complete engine configuration, one section per component."""
    features: FeatureConfig = field(default_factory=FeatureConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    edition: EditionConfig = field(default_factory=EditionConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from a nested dictionary, ignoring unknown keys."""
        sections = {
            "features": FeatureConfig,
            "scoring": ScoringConfig,
            "selection": SelectionConfig,
            "cache": CacheConfig,
            "feedback": FeedbackConfig,
            "edition": EditionConfig,
        }
        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            known = section_cls.__dataclass_fields__
            kwargs[name] = section_cls(**{k: v for k, v in values.items() if k in known})
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> "EngineConfig":
        """Raise InvalidConfiguration for settings the engine cannot run with."""
        if self.features.feature_length < CORE_FEATURE_COUNT:
            raise InvalidConfiguration(
                f"feature_length must be at least {CORE_FEATURE_COUNT}",
                "features.feature_length", self.features.feature_length,
            )
        for name in ("popularity_ceiling", "content_length_ceiling", "tag_count_ceiling",
                     "recency_decay_days", "engagement_ceiling", "activity_ceiling"):
            value = getattr(self.features, name)
            if value <= 0:
                raise InvalidConfiguration("ceiling must be positive", f"features.{name}", value)
        if self.features.category_slots <= 0:
            raise InvalidConfiguration(
                "category_slots must be positive", "features.category_slots", self.features.category_slots
            )
        if not 0 < self.features.top_categories <= self.features.feature_length - 5:
            raise InvalidConfiguration(
                "top_categories does not fit the consumer vector",
                "features.top_categories", self.features.top_categories,
            )
        if self.scoring.max_workers <= 0:
            raise InvalidConfiguration("max_workers must be positive", "scoring.max_workers", self.scoring.max_workers)
        if self.scoring.recency_window_days <= 0:
            raise InvalidConfiguration(
                "recency window must be positive", "scoring.recency_window_days", self.scoring.recency_window_days
            )
        _validate_bounds("selection", self.selection.min_count, self.selection.max_count)
        _validate_bounds("edition", self.edition.min_count, self.edition.max_count)
        if self.cache.ttl_seconds <= 0:
            raise InvalidConfiguration("ttl_seconds must be positive", "cache.ttl_seconds", self.cache.ttl_seconds)
        if self.cache.max_workers <= 0:
            raise InvalidConfiguration("max_workers must be positive", "cache.max_workers", self.cache.max_workers)
        if self.feedback.capacity <= 0:
            raise InvalidConfiguration("capacity must be positive", "feedback.capacity", self.feedback.capacity)
        if self.feedback.flush_every <= 0:
            raise InvalidConfiguration(
                "flush_every must be positive", "feedback.flush_every", self.feedback.flush_every
            )
        if self.edition.recency_window_hours <= 0:
            raise InvalidConfiguration(
                "recency window must be positive", "edition.recency_window_hours", self.edition.recency_window_hours
            )
        return self


def _validate_bounds(section: str, min_count: int, max_count: int) -> None:
    if max_count <= 0:
        raise InvalidConfiguration("max_count must be positive", f"{section}.max_count", max_count)
    if min_count < 0:
        raise InvalidConfiguration("min_count must not be negative", f"{section}.min_count", min_count)

