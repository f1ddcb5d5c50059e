# Recommendation service package: content scoring and selection engine

from .config import (
    CORE_FEATURE_COUNT,
    CacheConfig,
    EditionConfig,
    EngineConfig,
    FeatureConfig,
    FeedbackConfig,
    ScoringConfig,
    SelectionConfig,
)
from .exceptions import (
    RecommendationError,
    InvalidConfiguration,
    ModelUnavailable,
    FeatureExtractionError,
    CacheComputationError,
)
from .models import (
    ContentItem,
    ConsumerProfile,
    InteractionRecord,
    ScoredCandidate,
    Recommendation,
    FeedbackEvent,
    CacheKey,
    CacheEntry,
)
from .features import FeatureExtractor
from .relevance_model import RelevanceModel, InferenceSession
from .scoring import HeuristicScorer, ScoringEngine, clamp_score
from .selection import DiversitySelector
from .edition import EditionScorer, content_quality
from .cache import RecommendationCache
from .feedback import FeedbackRecorder
from .engine import RecommendationEngine
from .logging_config import (
    setup_logging,
    stop_logging,
    get_logger,
    ThreadSafeLoggingConfig,
)

__all__ = [
    "CORE_FEATURE_COUNT",
    "CacheConfig",
    "EditionConfig",
    "EngineConfig",
    "FeatureConfig",
    "FeedbackConfig",
    "ScoringConfig",
    "SelectionConfig",
    "RecommendationError",
    "InvalidConfiguration",
    "ModelUnavailable",
    "FeatureExtractionError",
    "CacheComputationError",
    "ContentItem",
    "ConsumerProfile",
    "InteractionRecord",
    "ScoredCandidate",
    "Recommendation",
    "FeedbackEvent",
    "CacheKey",
    "CacheEntry",
    "FeatureExtractor",
    "RelevanceModel",
    "InferenceSession",
    "HeuristicScorer",
    "ScoringEngine",
    "clamp_score",
    "DiversitySelector",
    "EditionScorer",
    "content_quality",
    "RecommendationCache",
    "FeedbackRecorder",
    "RecommendationEngine",
    "setup_logging",
    "stop_logging",
    "get_logger",
    "ThreadSafeLoggingConfig",
]
