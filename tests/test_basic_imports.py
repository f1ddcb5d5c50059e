"""
Basic import tests to verify the core functionality.
"""


def test_package_exports():
    """Test that the public engine API can be imported from the package."""
    from recommendation_service import (
        RecommendationEngine,
        EngineConfig,
        ContentItem,
        ConsumerProfile,
        Recommendation,
        FeedbackEvent,
        InvalidConfiguration,
        ModelUnavailable,
    )

    assert callable(RecommendationEngine)
    assert issubclass(InvalidConfiguration, Exception)
    assert issubclass(ModelUnavailable, Exception)

    item = ContentItem(id="a", category_id="1")
    assert item.id == "a"
    assert ConsumerProfile().is_anonymous
    assert Recommendation.empty().total == 0
    assert FeedbackEvent(consumer_id="u", item_id="a", outcome=True).outcome is True
    assert EngineConfig().validate().selection.max_count == 10


def test_exception_hierarchy():
    """All engine errors share one base class."""
    from recommendation_service.exceptions import (
        RecommendationError,
        InvalidConfiguration,
        ModelUnavailable,
        FeatureExtractionError,
        CacheComputationError,
    )

    for error_cls in (InvalidConfiguration, ModelUnavailable, FeatureExtractionError, CacheComputationError):
        assert issubclass(error_cls, RecommendationError)

    error = CacheComputationError("u1:abc", ValueError("boom"))
    assert "u1:abc" in str(error)
    assert isinstance(error.cause, ValueError)

    assert "max_count=0" in str(InvalidConfiguration("max_count must be positive", "max_count", 0))


def test_config_manager_imports():
    """Test that the configuration manager can be imported."""
    from config_manager import ConfigManager

    assert callable(ConfigManager)


def test_component_modules_import():
    """Each component module can be imported on its own."""
    from recommendation_service.features import FeatureExtractor
    from recommendation_service.scoring import ScoringEngine, HeuristicScorer
    from recommendation_service.selection import DiversitySelector
    from recommendation_service.cache import RecommendationCache
    from recommendation_service.feedback import FeedbackRecorder
    from recommendation_service.edition import EditionScorer
    from recommendation_service.relevance_model import RelevanceModel

    for component in (
        FeatureExtractor, ScoringEngine, HeuristicScorer, DiversitySelector,
        RecommendationCache, FeedbackRecorder, EditionScorer, RelevanceModel,
    ):
        assert callable(component)
