"""
relevance_model.py - Trainable relevance model

A small feed-forward network (ReLU hidden layers, sigmoid output) over the
concatenated consumer and item vectors. Weights are stored as ``.npz``
archives with arrays ``W0..Wn`` and ``b0..bn``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from .exceptions import ModelUnavailable

_LOG = logging.getLogger("recommendation_service.relevance_model")

DEFAULT_HIDDEN_LAYERS: Tuple[int, ...] = (64, 32, 16)


def _sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500.0, 500.0)))


def _relu(z: np.ndarray) -> np.ndarray:
    return np.maximum(z, 0.0)


class RelevanceModel:
    """Dense network producing a probability-like relevance score."""

    def __init__(self, weights: Sequence[np.ndarray], biases: Sequence[np.ndarray]):
        if not weights or len(weights) != len(biases):
            raise ValueError("weights and biases must be non-empty and of equal length")
        self.weights = [np.asarray(w, dtype=np.float64) for w in weights]
        self.biases = [np.asarray(b, dtype=np.float64).reshape(-1) for b in biases]

        for index, (w, b) in enumerate(zip(self.weights, self.biases)):
            if w.ndim != 2 or w.shape[1] != b.shape[0]:
                raise ValueError(f"layer {index}: weight {w.shape} does not match bias {b.shape}")
            if index and self.weights[index - 1].shape[1] != w.shape[0]:
                raise ValueError(f"layer {index}: input width {w.shape[0]} does not chain")
        if self.weights[-1].shape[1] != 1:
            raise ValueError("output layer must have exactly one unit")

    @property
    def input_size(self) -> int:
        return self.weights[0].shape[0]

    @classmethod
    def initialize(
        cls,
        input_size: int,
        hidden_layers: Sequence[int] = DEFAULT_HIDDEN_LAYERS,
        seed: int = 0,
    ) -> "RelevanceModel":
        """Create an untrained network with He-initialized weights."""
        rng = np.random.default_rng(seed)
        sizes = [input_size, *hidden_layers, 1]
        weights = [
            rng.normal(0.0, np.sqrt(2.0 / fan_in), size=(fan_in, fan_out))
            for fan_in, fan_out in zip(sizes[:-1], sizes[1:])
        ]
        biases = [np.zeros(fan_out) for fan_out in sizes[1:]]
        return cls(weights, biases)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RelevanceModel":
        """Load weights from an ``.npz`` archive.

        Raises:
            ModelUnavailable: if the file is missing, unreadable or inconsistent
        """
        path = Path(path)
        if not path.exists():
            raise ModelUnavailable("Model file not found", str(path))
        try:
            with np.load(path) as archive:
                layer_count = len([name for name in archive.files if name.startswith("W")])
                weights = [archive[f"W{i}"] for i in range(layer_count)]
                biases = [archive[f"b{i}"] for i in range(layer_count)]
            model = cls(weights, biases)
        except (OSError, KeyError, ValueError) as e:
            raise ModelUnavailable(f"Cannot load model: {e}", str(path)) from e
        _LOG.info(f"Loaded relevance model from {path} ({layer_count} layers, input {model.input_size})")
        return model

    def save(self, path: Union[str, Path]) -> Path:
        """Write weights to an ``.npz`` archive and return its path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        arrays = {}
        for index, (w, b) in enumerate(zip(self.weights, self.biases)):
            arrays[f"W{index}"] = w
            arrays[f"b{index}"] = b
        with open(path, "wb") as f:
            np.savez(f, **arrays)
        return path

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Return one score in [0, 1] per row of ``batch``."""
        activations, _ = self._forward(np.atleast_2d(np.asarray(batch, dtype=np.float64)))
        return activations[-1].reshape(-1)

    def session(self) -> "InferenceSession":
        return InferenceSession(self)

    def _forward(self, x: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        if x.shape[1] != self.input_size:
            raise ValueError(f"expected {self.input_size} features, got {x.shape[1]}")
        activations = [x]
        pre_activations = []
        last = len(self.weights) - 1
        for index, (w, b) in enumerate(zip(self.weights, self.biases)):
            z = activations[-1] @ w + b
            pre_activations.append(z)
            activations.append(_sigmoid(z) if index == last else _relu(z))
        return activations, pre_activations

    def fit(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        epochs: int = 20,
        learning_rate: float = 0.05,
        batch_size: int = 32,
        seed: int = 0,
        progress: bool = False,
    ) -> List[float]:
        """Train with mini-batch gradient descent on binary cross-entropy.

        Returns:
            Mean training loss per epoch
        """
        x = np.atleast_2d(np.asarray(features, dtype=np.float64))
        y = np.asarray(labels, dtype=np.float64).reshape(-1, 1)
        if x.shape[0] != y.shape[0]:
            raise ValueError(f"{x.shape[0]} feature rows but {y.shape[0]} labels")
        if x.shape[0] == 0:
            return []

        rng = np.random.default_rng(seed)
        history: List[float] = []
        for _ in tqdm(range(epochs), desc="Training relevance model", disable=not progress):
            order = rng.permutation(x.shape[0])
            epoch_loss = 0.0
            for start in range(0, x.shape[0], batch_size):
                idx = order[start:start + batch_size]
                epoch_loss += self._train_step(x[idx], y[idx], learning_rate) * len(idx)
            history.append(epoch_loss / x.shape[0])
        return history

    def _train_step(self, x: np.ndarray, y: np.ndarray, learning_rate: float) -> float:
        activations, pre_activations = self._forward(x)
        output = activations[-1]
        eps = 1e-12
        loss = float(-np.mean(y * np.log(output + eps) + (1.0 - y) * np.log(1.0 - output + eps)))

        # Sigmoid + cross-entropy collapses to (p - y) at the output.
        delta = (output - y) / x.shape[0]
        for index in range(len(self.weights) - 1, -1, -1):
            grad_w = activations[index].T @ delta
            grad_b = delta.sum(axis=0)
            if index:
                delta = (delta @ self.weights[index].T) * (pre_activations[index - 1] > 0)
            self.weights[index] -= learning_rate * grad_w
            self.biases[index] -= learning_rate * grad_b
        return loss


class InferenceSession:
    """Scoped inference handle for one scoring batch.

    Holds per-thread input buffers while open; ``close()`` (or leaving the
    ``with`` block) drops them. Predictions after close raise ModelUnavailable.
    """

    def __init__(self, model: RelevanceModel):
        self._model = model
        self._local: Optional[threading.local] = threading.local()
        self._lock = threading.Lock()
        self.predictions = 0

    def __enter__(self) -> "InferenceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._local is None

    def predict_one(self, features: np.ndarray) -> float:
        """Score one combined vector; raises ValueError on bad shape or output."""
        local = self._local
        if local is None:
            raise ModelUnavailable("Inference session is closed")

        buffer = getattr(local, "buffer", None)
        if buffer is None:
            buffer = np.empty((1, self._model.input_size), dtype=np.float64)
            local.buffer = buffer
        features = np.asarray(features, dtype=np.float64).reshape(-1)
        if features.shape[0] != buffer.shape[1]:
            raise ValueError(f"expected {buffer.shape[1]} features, got {features.shape[0]}")
        buffer[0, :] = features

        score = float(self._model.predict(buffer)[0])
        if not np.isfinite(score):
            raise ValueError(f"model produced non-finite score {score}")
        with self._lock:
            self.predictions += 1
        return score

    def close(self) -> None:
        self._local = None
