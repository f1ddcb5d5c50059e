#!/usr/bin/env python3
"""
Train the relevance model from recorded reader feedback.

The engine's feedback log (FeedbackConfig.persistence_file) stores every
accept/reject event together with the combined consumer + item feature vector
that was served. Events without a feature snapshot (the served-feature journal
had already forgotten them) are skipped.

Input format (data/feedback.json):
{
  "events": [
    {"consumer_id": "42", "item_id": "a1", "outcome": true,
     "timestamp": "2025-12-20T08:00:00+00:00", "features": [0.1, ...]}
  ]
}

Usage:
    python scripts/train_relevance_model.py [--feedback-file FILE] [--output FILE] [--epochs N]
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from recommendation_service import FeedbackEvent, RelevanceModel, setup_logging, stop_logging


def load_training_data(feedback_file: Path) -> Tuple[np.ndarray, np.ndarray, Dict[str, Any]]:
    """
    Read feedback events and turn them into a training set.

    Args:
        feedback_file: JSON file written by the feedback recorder

    Returns:
        (features, labels, stats) where stats counts used and skipped events
    """
    stats = {"events": 0, "used": 0, "skipped": 0, "width": None, "errors": []}

    with open(feedback_file, 'r', encoding='utf-8') as f:
        data = json.load(f)

    rows = []
    labels = []
    for raw in data.get("events", []):
        stats["events"] += 1
        try:
            event = FeedbackEvent.from_dict(raw)
        except (TypeError, ValueError) as e:
            stats["skipped"] += 1
            stats["errors"].append(f"Unreadable event: {e}")
            continue
        if not event.features:
            stats["skipped"] += 1
            continue
        if stats["width"] is None:
            stats["width"] = len(event.features)
        elif len(event.features) != stats["width"]:
            stats["skipped"] += 1
            stats["errors"].append(
                f"Event {event.consumer_id}/{event.item_id} has {len(event.features)} features, "
                f"expected {stats['width']}"
            )
            continue
        rows.append(event.features)
        labels.append(1.0 if event.outcome else 0.0)
        stats["used"] += 1

    if not rows:
        return np.zeros((0, 0)), np.zeros(0), stats
    return np.asarray(rows, dtype=np.float64), np.asarray(labels, dtype=np.float64), stats


def train_model(
    feedback_file: Path,
    output: Path,
    epochs: int = 20,
    learning_rate: float = 0.05,
    seed: int = 0,
    base_model: Optional[Path] = None,
    progress: bool = True,
) -> Dict[str, Any]:
    """
    Train (or continue training) a relevance model and save its weights.

    Args:
        feedback_file: Feedback log to learn from
        output: Destination ``.npz`` file
        epochs: Passes over the training set
        learning_rate: Gradient descent step size
        seed: Seed for weight initialization and shuffling
        base_model: Existing weights to continue from instead of a fresh network
        progress: Show a tqdm progress bar

    Returns:
        Result dict with statistics and the loss history
    """
    features, labels, stats = load_training_data(feedback_file)
    result = {**stats, "saved": False, "losses": []}

    if stats["used"] == 0:
        print(f"ℹ️  No feedback events with feature snapshots in {feedback_file}")
        print("   Nothing to train on.")
        return result

    positives = int(labels.sum())
    print(f"📂 {stats['used']} usable events ({positives} accepted, {stats['used'] - positives} rejected)")

    if base_model is not None:
        model = RelevanceModel.load(base_model)
        if model.input_size != features.shape[1]:
            result["errors"].append(
                f"Base model expects {model.input_size} features, feedback has {features.shape[1]}"
            )
            print(f"❌ {result['errors'][-1]}")
            return result
    else:
        model = RelevanceModel.initialize(features.shape[1], seed=seed)

    result["losses"] = model.fit(
        features, labels, epochs=epochs, learning_rate=learning_rate, seed=seed, progress=progress
    )
    model.save(output)
    result["saved"] = True
    print(f"\n💾 Saved model to {output}")
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Train the relevance model from recorded reader feedback"
    )
    parser.add_argument(
        "--feedback-file",
        type=Path,
        default=Path(__file__).parent.parent / "data" / "feedback.json",
        help="Feedback log to train on (default: ./data/feedback.json)"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path(__file__).parent.parent / "models" / "relevance_model.npz",
        help="Where to write the trained weights (default: ./models/relevance_model.npz)"
    )
    parser.add_argument("--epochs", type=int, default=20, help="Training epochs (default: 20)")
    parser.add_argument("--learning-rate", type=float, default=0.05, help="Step size (default: 0.05)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument("--base-model", type=Path, help="Continue training from these weights")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(debug=args.debug)

    print("🚀 Relevance Model Training")
    print("=" * 50)
    print(f"Feedback file: {args.feedback_file}")
    print(f"Output: {args.output}")
    print()

    if not args.feedback_file.exists():
        print(f"❌ Feedback file not found: {args.feedback_file}")
        stop_logging()
        sys.exit(1)

    try:
        result = train_model(
            args.feedback_file,
            args.output,
            epochs=args.epochs,
            learning_rate=args.learning_rate,
            seed=args.seed,
            base_model=args.base_model,
        )
    finally:
        stop_logging()

    print()
    print("📊 Training Summary:")
    print(f"   - Events read: {result['events']}")
    print(f"   - Used: {result['used']}")
    print(f"   - Skipped: {result['skipped']}")
    if result["losses"]:
        print(f"   - Final loss: {result['losses'][-1]:.4f}")

    if result["errors"]:
        print("\n⚠️  Problems encountered:")
        for error in result["errors"]:
            print(f"   - {error}")
    if not result["saved"]:
        sys.exit(1)

    print("\n✅ Training complete!")


if __name__ == "__main__":
    main()
