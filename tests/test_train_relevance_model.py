"""
Tests for the feedback-driven training script.
"""

import importlib.util
import json
from pathlib import Path

import numpy as np
import pytest

from recommendation_service import RelevanceModel

SCRIPT = Path(__file__).parent.parent / "scripts" / "train_relevance_model.py"


@pytest.fixture(scope="module")
def trainer():
    spec = importlib.util.spec_from_file_location("train_relevance_model", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _write_feedback(path, events):
    path.write_text(json.dumps({"events": events}), encoding="utf-8")
    return path


def _events(count=40, width=20, seed=0):
    rng = np.random.default_rng(seed)
    events = []
    for index in range(count):
        features = rng.random(width)
        events.append({
            "consumer_id": "u1",
            "item_id": f"item-{index}",
            "outcome": bool(features[0] > 0.5),
            "timestamp": "2025-06-01T12:00:00+00:00",
            "features": features.tolist(),
        })
    return events


def test_load_training_data_skips_unusable_events(trainer, tmp_path):
    events = _events(count=5)
    events.append({"consumer_id": "u1", "item_id": "no-snapshot", "outcome": True})
    events.append({"consumer_id": "u1", "item_id": "narrow", "outcome": True, "features": [0.1, 0.2]})
    path = _write_feedback(tmp_path / "feedback.json", events)

    features, labels, stats = trainer.load_training_data(path)

    assert features.shape == (5, 20)
    assert labels.shape == (5,)
    assert stats["events"] == 7
    assert stats["used"] == 5
    assert stats["skipped"] == 2
    assert len(stats["errors"]) == 1


def test_train_model_writes_loadable_weights(trainer, tmp_path):
    path = _write_feedback(tmp_path / "feedback.json", _events())
    output = tmp_path / "models" / "relevance.npz"

    result = trainer.train_model(path, output, epochs=3, progress=False)

    assert result["saved"] is True
    assert len(result["losses"]) == 3
    assert RelevanceModel.load(output).input_size == 20


def test_train_model_continues_from_base_model(trainer, tmp_path):
    base = RelevanceModel.initialize(20, hidden_layers=(8,), seed=2).save(tmp_path / "base.npz")
    path = _write_feedback(tmp_path / "feedback.json", _events())
    output = tmp_path / "next.npz"

    result = trainer.train_model(path, output, epochs=2, base_model=base, progress=False)

    assert result["saved"] is True
    assert [w.shape for w in RelevanceModel.load(output).weights] == [(20, 8), (8, 1)]


def test_train_model_rejects_mismatched_base_model(trainer, tmp_path):
    base = RelevanceModel.initialize(12, hidden_layers=(4,)).save(tmp_path / "base.npz")
    path = _write_feedback(tmp_path / "feedback.json", _events())

    result = trainer.train_model(path, tmp_path / "out.npz", base_model=base, progress=False)

    assert result["saved"] is False
    assert not (tmp_path / "out.npz").exists()


def test_nothing_to_train_on(trainer, tmp_path):
    path = _write_feedback(tmp_path / "feedback.json", [{"consumer_id": "u1", "item_id": "a", "outcome": True}])
    result = trainer.train_model(path, tmp_path / "out.npz", progress=False)

    assert result["used"] == 0
    assert result["saved"] is False
