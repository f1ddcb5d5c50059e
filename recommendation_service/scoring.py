"""
Relevance scoring.

The primary scorer is the trainable RelevanceModel; the heuristic scorer is
the deterministic fallback used when the model is unavailable, and for any
single candidate the model fails on.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import FeatureConfig, ScoringConfig
from .exceptions import InvalidConfiguration, ModelUnavailable
from .features import ITEM_FEATURED, ITEM_POPULARITY, ITEM_RECENCY, FeatureVector
from .relevance_model import InferenceSession, RelevanceModel

_LOG = logging.getLogger("recommendation_service.scoring")

SOURCE_MODEL = "model"
SOURCE_HEURISTIC = "heuristic"

ModelLoader = Callable[[Union[str, Path]], RelevanceModel]


def clamp_score(value: float) -> float:
    """Clamp to [0, 1]; NaN counts as 0."""
    if value != value:
        return 0.0
    return min(max(float(value), 0.0), 1.0)


class HeuristicScorer:
    """Weighted sum of popularity, recency, editorial flag and category affinity.

    Defaults: popularity capped at 0.3, recency bonus up to 0.3 decaying
    linearly to zero over 30 days, featured bonus 0.2, mean category share
    weighted 0.2.
    """

    name = SOURCE_HEURISTIC

    def __init__(self, config: ScoringConfig, feature_config: FeatureConfig):
        self.config = config
        self.recency_decay_days = feature_config.recency_decay_days
        self.share_slots = slice(0, feature_config.top_categories)

    def score(self, consumer_features: FeatureVector, item_features: FeatureVector) -> float:
        consumer = np.asarray(consumer_features, dtype=np.float64)
        item = np.asarray(item_features, dtype=np.float64)
        if not (np.all(np.isfinite(consumer)) and np.all(np.isfinite(item))):
            raise ValueError("feature vectors contain non-finite values")

        score = min(float(item[ITEM_POPULARITY]), self.config.popularity_cap)
        score += self._recency_bonus(float(item[ITEM_RECENCY]))
        if item[ITEM_FEATURED] >= 0.5:
            score += self.config.featured_bonus
        shares = consumer[self.share_slots]
        if shares.size:
            score += float(shares.mean()) * self.config.affinity_weight
        return clamp_score(score)

    def _recency_bonus(self, decay: float) -> float:
        # The item vector stores exp(-days / decay_days); recover the age.
        if decay <= 0:
            return 0.0
        days = -self.recency_decay_days * math.log(min(decay, 1.0))
        return self.config.recency_cap * max(0.0, 1.0 - days / self.config.recency_window_days)


class ScoringEngine:
    """Scores candidates with the model, falling back to the heuristic.

    A model that fails to initialize disables the model path until
    ``reinitialize()`` succeeds; startup itself never fails because of it.
    """

    def __init__(
        self,
        config: ScoringConfig,
        feature_config: FeatureConfig,
        model: Optional[RelevanceModel] = None,
        model_loader: ModelLoader = RelevanceModel.load,
    ):
        self.config = config
        self.input_size = 2 * feature_config.feature_length
        if model is not None and model.input_size != self.input_size:
            raise InvalidConfiguration(
                "model input width does not match two feature vectors",
                "model.input_size", model.input_size,
            )
        self.heuristic = HeuristicScorer(config, feature_config)
        self._injected_model = model
        self._model_loader = model_loader
        self._model: Optional[RelevanceModel] = None
        self._model_error: Optional[ModelUnavailable] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def model_available(self) -> bool:
        return self._model is not None

    @property
    def model_error(self) -> Optional[ModelUnavailable]:
        return self._model_error

    def init(self) -> bool:
        """Load the model and start the worker pool. Returns model availability."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers, thread_name_prefix="scoring"
            )
        return self.reinitialize()

    def reinitialize(self, model: Optional[RelevanceModel] = None) -> bool:
        """(Re)load the model. On failure the heuristic path stays active."""
        if model is not None:
            self._injected_model = model
        try:
            self._model = self._acquire_model()
            self._model_error = None
            _LOG.info("Relevance model active")
        except ModelUnavailable as e:
            self._model = None
            self._model_error = e
            _LOG.warning(f"Relevance model unavailable, using heuristic scoring: {e}")
        return self.model_available

    def _acquire_model(self) -> RelevanceModel:
        if self._injected_model is not None:
            model = self._injected_model
        elif self.config.model_path:
            model = self._model_loader(self.config.model_path)
        else:
            raise ModelUnavailable("No model path configured")
        if model.input_size != self.input_size:
            raise ModelUnavailable(
                f"Model expects {model.input_size} inputs, engine produces {self.input_size}",
                self.config.model_path,
            )
        return model

    def disable_model(self, reason: str = "disabled by host") -> None:
        """Switch to heuristic scoring until the next successful reinitialize()."""
        self._model = None
        self._injected_model = None
        self._model_error = ModelUnavailable(reason)
        _LOG.warning(f"Relevance model disabled: {reason}")

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._model = None

    def score(self, consumer_features: FeatureVector, item_features: FeatureVector) -> float:
        """Score one (consumer, item) pair."""
        return self.score_batch(consumer_features, [item_features])[0][0]

    def score_batch(
        self,
        consumer_features: FeatureVector,
        item_features: Sequence[FeatureVector],
    ) -> List[Tuple[float, str]]:
        """Score every item against one consumer.

        Returns (score, source) per item, in input order. A failure on one
        candidate substitutes the heuristic score for that candidate only.
        """
        if not item_features:
            return []
        model = self._model
        if model is None:
            return [self._heuristic_score(consumer_features, item) for item in item_features]

        with model.session() as session:
            if self._executor is None or len(item_features) == 1:
                return [self._score_one(session, consumer_features, item) for item in item_features]
            futures = [
                self._executor.submit(self._score_one, session, consumer_features, item)
                for item in item_features
            ]
            return [future.result() for future in futures]

    def _score_one(
        self,
        session: InferenceSession,
        consumer_features: FeatureVector,
        item_features: FeatureVector,
    ) -> Tuple[float, str]:
        try:
            combined = np.concatenate([consumer_features, item_features])
            return clamp_score(session.predict_one(combined)), SOURCE_MODEL
        except Exception as e:
            _LOG.warning(f"Model scoring failed for one candidate, using heuristic: {e}")
        return self._heuristic_score(consumer_features, item_features)

    def _heuristic_score(
        self, consumer_features: FeatureVector, item_features: FeatureVector
    ) -> Tuple[float, str]:
        try:
            return self.heuristic.score(consumer_features, item_features), SOURCE_HEURISTIC
        except Exception as e:
            _LOG.error(f"Heuristic scoring failed for one candidate, scoring 0: {e}")
            return 0.0, SOURCE_HEURISTIC
