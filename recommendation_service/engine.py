"""
Recommendation engine: extract -> score -> select -> cache.

The host constructs one ``RecommendationEngine`` with its configuration,
calls ``init()`` before serving and ``shutdown()`` when done (or uses it as a
context manager). Apart from construction-time misuse, every request is
answered with a Recommendation: failures inside the pipeline degrade to
heuristic scoring, and in the worst case to an empty result.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .cache import RecommendationCache
from .config import EngineConfig
from .edition import EditionScorer
from .exceptions import CacheComputationError, FeatureExtractionError, InvalidConfiguration
from .features import ANONYMOUS_CONSUMER, FeatureExtractor, FeatureVector
from .feedback import FeedbackRecorder
from .models import (
    CacheKey,
    ConsumerProfile,
    ContentItem,
    FeedbackEvent,
    Recommendation,
    ScoredCandidate,
)
from .relevance_model import RelevanceModel
from .scoring import SOURCE_HEURISTIC, ModelLoader, ScoringEngine
from .selection import DiversitySelector

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationEngine:
    """Scores and selects content for readers and for publication runs."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        model: Optional[RelevanceModel] = None,
        clock: Optional[Callable[[], datetime]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        model_loader: ModelLoader = RelevanceModel.load,
    ):
        """
        Args:
            config: Engine configuration; validated here
            model: Pre-built relevance model, used instead of ``scoring.model_path``
            clock: Wall clock used for recency features and reason tags
            monotonic: Clock used for cache expiry
            model_loader: Loads a model from ``scoring.model_path``

        Raises:
            InvalidConfiguration: on unusable settings or a model of the wrong width
        """
        self.config = (config or EngineConfig()).validate()
        self._clock = clock or _utcnow
        self._monotonic = monotonic
        self._model = model
        self._model_loader = model_loader
        self._lifecycle_lock = threading.RLock()
        self._initialized = False

        self._build_components()
        self._cache: Optional[RecommendationCache] = None
        self._feedback: Optional[FeedbackRecorder] = None
        self._served: "OrderedDict[Tuple[str, str], Tuple[float, ...]]" = OrderedDict()
        self._served_lock = threading.Lock()

    def _build_components(self) -> None:
        self.extractor = FeatureExtractor(self.config.features, clock=self._clock)
        self.selector = DiversitySelector(self.config.selection, clock=self._clock)
        self.edition_scorer = EditionScorer(self.config.edition, clock=self._clock)
        self.scoring = ScoringEngine(
            self.config.scoring,
            self.config.features,
            model=self._model,
            model_loader=self._model_loader,
        )

    # Lifecycle ----------------------------------------------------------------

    def init(self) -> "RecommendationEngine":
        """Load the model, start worker pools, open the cache and feedback log."""
        with self._lifecycle_lock:
            if self._initialized:
                return self
            self.scoring.init()
            self._cache = self._new_cache()
            self._feedback = self._new_feedback_recorder()
            self._initialized = True
            logger.info(
                f"Recommendation engine ready (model={'on' if self.model_available else 'heuristic'}, "
                f"workers={self.config.scoring.max_workers}, ttl={self.config.cache.ttl_seconds}s)"
            )
        return self

    def shutdown(self) -> None:
        """Stop worker pools, flush the feedback log and drop cached state."""
        with self._lifecycle_lock:
            if not self._initialized:
                return
            self._cache.close()
            self.scoring.shutdown()
            self._feedback.flush()
            self._cache = None
            self._feedback = None
            with self._served_lock:
                self._served.clear()
            self._initialized = False
            logger.info("Recommendation engine shut down")

    def __enter__(self) -> "RecommendationEngine":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _new_cache(self) -> RecommendationCache:
        return RecommendationCache(
            ttl_seconds=self.config.cache.ttl_seconds,
            max_workers=self.config.cache.max_workers,
            clock=self._monotonic,
        )

    def _new_feedback_recorder(self, events: Optional[List[FeedbackEvent]] = None) -> FeedbackRecorder:
        persistence_file = self.config.feedback.persistence_file
        return FeedbackRecorder(
            capacity=self.config.feedback.capacity,
            persistence_file=Path(persistence_file) if persistence_file else None,
            flush_every=self.config.feedback.flush_every,
            events=events,
        )

    def reconfigure(self, config: EngineConfig) -> None:
        """Swap in a new configuration. Cached recommendations are discarded.

        Raises:
            InvalidConfiguration: if ``config`` is unusable; the old one stays active
        """
        config.validate()
        with self._lifecycle_lock:
            old, old_scoring = self.config, self.scoring
            self.config = config
            try:
                self._build_components()
            except InvalidConfiguration:
                self.config = old
                self._build_components()
                self.scoring = old_scoring
                raise

            if not self._initialized:
                return
            old_scoring.shutdown()
            self.scoring.init()
            self._cache.close()
            self._cache = self._new_cache()
            if config.feedback != old.feedback:
                self._feedback.flush()
                self._feedback = self._new_feedback_recorder(self._feedback.snapshot())
            logger.info("Recommendation engine reconfigured")

    @property
    def model_available(self) -> bool:
        return self.scoring.model_available

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("RecommendationEngine.init() must be called before use")

    # Recommendations ----------------------------------------------------------

    def get_recommendations(
        self,
        candidate_items: Iterable[ContentItem],
        consumer_profile: Optional[ConsumerProfile],
        min_count: Optional[int] = None,
        max_count: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Recommendation:
        """Ordered, annotated selection of ``candidate_items`` for one reader.

        Raises:
            InvalidConfiguration: if ``max_count <= 0`` or ``min_count < 0``
        """
        min_count = self.config.selection.min_count if min_count is None else min_count
        max_count = self.config.selection.max_count if max_count is None else max_count
        self._validate_bounds(min_count, max_count)
        self._require_initialized()

        items = list(candidate_items or [])
        if not items:
            return Recommendation.empty()

        key = self.cache_key(items, consumer_profile, min_count, max_count)
        try:
            return self._cache.get_or_compute(
                key,
                lambda: self._compute(items, consumer_profile, min_count, max_count),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(f"Timed out waiting for {key}, answering with heuristic scores")
        except CacheComputationError as e:
            logger.error(f"Recommendation pipeline failed for {key}, falling back: {e.cause}")
        except RuntimeError as e:
            logger.error(f"Recommendation cache unusable, falling back: {e}")
        return self._fallback(items, consumer_profile, min_count, max_count)

    @staticmethod
    def _validate_bounds(min_count: int, max_count: int) -> None:
        if max_count <= 0:
            raise InvalidConfiguration("max_count must be positive", "max_count", max_count)
        if min_count < 0:
            raise InvalidConfiguration("min_count must not be negative", "min_count", min_count)

    def cache_key(
        self,
        items: Sequence[ContentItem],
        consumer_profile: Optional[ConsumerProfile],
        min_count: int,
        max_count: int,
    ) -> CacheKey:
        """Key under which the selection for these inputs is cached."""
        consumer_id = consumer_profile.consumer_id if consumer_profile is not None else None
        digest = hashlib.sha1()
        for item_id in sorted(item.id for item in items):
            digest.update(item_id.encode("utf-8"))
            digest.update(b"\x00")
        digest.update(f"|{min_count}|{max_count}".encode("utf-8"))
        if consumer_id is None and consumer_profile is not None:
            # Anonymous histories differ per session; they must not share entries.
            for record in consumer_profile.interactions:
                digest.update(f"|{record.item_id}:{record.category_id}".encode("utf-8"))
        return CacheKey(consumer_id=consumer_id or ANONYMOUS_CONSUMER, fingerprint=digest.hexdigest())

    def _compute(
        self,
        items: Sequence[ContentItem],
        consumer_profile: Optional[ConsumerProfile],
        min_count: int,
        max_count: int,
    ) -> Recommendation:
        now = self._clock()
        consumer_features = self._consumer_features(consumer_profile, now)
        item_features = [self._item_features(item, now) for item in items]
        results = self.scoring.score_batch(consumer_features, item_features)

        candidates = [
            ScoredCandidate(
                item=item,
                score=score,
                source=source,
                features=tuple(np.concatenate([consumer_features, features]).tolist()),
            )
            for item, features, (score, source) in zip(items, item_features, results)
        ]
        used_fallback = any(candidate.source == SOURCE_HEURISTIC for candidate in candidates)
        recommendation = self.selector.select(candidates, min_count, max_count, used_fallback=used_fallback)

        if consumer_profile is not None and consumer_profile.consumer_id:
            self._remember_served(consumer_profile.consumer_id, recommendation.items)
        return recommendation

    def _fallback(
        self,
        items: Sequence[ContentItem],
        consumer_profile: Optional[ConsumerProfile],
        min_count: int,
        max_count: int,
    ) -> Recommendation:
        """Uncached heuristic-only pass used when the regular pipeline fails."""
        try:
            now = self._clock()
            consumer_features = self._consumer_features(consumer_profile, now)
            candidates = []
            for item in items:
                item_features = self._item_features(item, now)
                try:
                    score = self.scoring.heuristic.score(consumer_features, item_features)
                except (ValueError, IndexError) as e:
                    logger.warning(f"Heuristic scoring failed for item {item.id}: {e}")
                    score = 0.0
                candidates.append(ScoredCandidate(item=item, score=score, source=SOURCE_HEURISTIC))
            return self.selector.select(candidates, min_count, max_count, used_fallback=True)
        except Exception:
            logger.exception("Heuristic fallback failed, returning an empty recommendation")
            return Recommendation.empty(used_fallback=True)

    def _consumer_features(self, profile: Optional[ConsumerProfile], now: datetime) -> FeatureVector:
        try:
            return self.extractor.extract_consumer_features(profile, now)
        except FeatureExtractionError as e:
            logger.warning(f"Using default consumer features: {e}")
            return self.extractor.default_consumer_features(profile.consumer_id if profile else None)

    def _item_features(self, item: ContentItem, now: datetime) -> FeatureVector:
        try:
            return self.extractor.extract_item_features(item, now)
        except FeatureExtractionError as e:
            logger.warning(f"Using default item features: {e}")
            return self.extractor.default_item_features(str(item.id))

    # Editions -----------------------------------------------------------------

    def plan_edition(
        self,
        candidate_items: Iterable[ContentItem],
        category_priority: Sequence[str] = (),
        min_count: Optional[int] = None,
        max_count: Optional[int] = None,
    ) -> Recommendation:
        """Select the articles for a compiled publication run.

        Raises:
            InvalidConfiguration: if ``max_count <= 0`` or ``min_count < 0``
        """
        min_count = self.config.edition.min_count if min_count is None else min_count
        max_count = self.config.edition.max_count if max_count is None else max_count
        self._validate_bounds(min_count, max_count)

        items = list(candidate_items or [])
        if not items:
            return Recommendation.empty()
        try:
            candidates = self.edition_scorer.score_all(items, category_priority)
            return self.selector.select(candidates, min_count, max_count)
        except Exception:
            logger.exception("Edition planning failed, returning an empty selection")
            return Recommendation.empty(used_fallback=True)

    # Feedback -----------------------------------------------------------------

    def submit_feedback(self, consumer_id: str, item_id: str, outcome: bool) -> None:
        """Record a reader's reaction to a recommended item. Never raises."""
        try:
            self._require_initialized()
            consumer_id, item_id = str(consumer_id), str(item_id)
            with self._served_lock:
                features = self._served.get((consumer_id, item_id))
            self._feedback.record(
                FeedbackEvent(
                    consumer_id=consumer_id,
                    item_id=item_id,
                    outcome=bool(outcome),
                    timestamp=self._clock(),
                    features=features,
                )
            )
            self._cache.invalidate_consumer(consumer_id)
        except Exception as e:
            logger.warning(f"Dropped feedback {consumer_id}/{item_id}: {e}")

    def drain_feedback(self, limit: Optional[int] = None) -> List[FeedbackEvent]:
        """Hand recorded feedback to a retraining job, oldest first."""
        self._require_initialized()
        return self._feedback.drain(limit)

    def _remember_served(self, consumer_id: str, candidates: Sequence[ScoredCandidate]) -> None:
        capacity = self.config.feedback.served_feature_capacity
        with self._served_lock:
            for candidate in candidates:
                if candidate.features is None:
                    continue
                key = (consumer_id, candidate.item.id)
                self._served[key] = candidate.features
                self._served.move_to_end(key)
            while len(self._served) > capacity:
                self._served.popitem(last=False)

    # Maintenance --------------------------------------------------------------

    def invalidate_cache(self, consumer_id: Optional[str] = None) -> None:
        """Drop cached recommendations for one reader, or all of them."""
        self._require_initialized()
        if consumer_id is None:
            self._cache.clear()
        else:
            self._cache.invalidate_consumer(consumer_id)

    def cache_stats(self) -> Dict[str, int]:
        self._require_initialized()
        return self._cache.stats()
