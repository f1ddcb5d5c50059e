#!/usr/bin/env python3
"""
Debug tool for the recommendation engine.

Loads candidate articles (and optionally a reader's history) from JSON files,
runs them through the engine and prints the feature vectors, per-candidate
scores with their source, and the final annotated selection.

Usage:
    python debug/debug_recommendations.py <candidates.json> [--profile history.json] [--consumer ID]

Example:
    python debug/debug_recommendations.py data/articles.json --profile data/history_42.json --consumer 42
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager
from recommendation_service import (
    ConsumerProfile,
    ContentItem,
    RecommendationEngine,
    setup_logging,
    stop_logging,
)


def load_candidates(path: Path) -> List[ContentItem]:
    """Load candidate articles from a JSON list (or {"articles": [...]})."""
    data = json.loads(path.read_text(encoding='utf-8'))
    if isinstance(data, dict):
        data = data.get("articles", [])

    items = []
    for row in data:
        if not isinstance(row, dict) or row.get("id") is None:
            print(f"Warning: skipping malformed article row: {row!r}", file=sys.stderr)
            continue
        items.append(ContentItem.from_record(row))
    return items


def load_profile(path: Optional[Path], consumer_id: Optional[str]) -> Optional[ConsumerProfile]:
    """Load a reading history from a JSON list of interaction rows."""
    if path is None:
        return ConsumerProfile(consumer_id=consumer_id) if consumer_id else None
    data = json.loads(path.read_text(encoding='utf-8'))
    if isinstance(data, dict):
        consumer_id = consumer_id or data.get("consumer_id")
        data = data.get("interactions", [])
    return ConsumerProfile.from_records(consumer_id, data)


def print_section(title: str):
    """Print a section header."""
    print(f"\n{'='*80}")
    print(f"  {title}")
    print(f"{'='*80}")


def print_vector(label: str, vector) -> None:
    values = " ".join(f"{v:.3f}" for v in vector)
    print(f"  {label:24s} [{values}]")


def debug_recommendations(
    candidates_file: Path,
    profile_file: Optional[Path] = None,
    consumer_id: Optional[str] = None,
    config_file: Optional[Path] = None,
    min_count: Optional[int] = None,
    max_count: Optional[int] = None,
) -> Dict[str, Any]:
    """Run the engine once and print how every candidate was scored."""
    config_manager = ConfigManager(str(config_file)) if config_file else ConfigManager()
    config = config_manager.get_engine_config()

    print_section("Recommendation Debug")
    items = load_candidates(candidates_file)
    profile = load_profile(profile_file, consumer_id)
    print(f"\n  Candidates: {len(items)}")
    print(f"  Consumer: {profile.consumer_id if profile and profile.consumer_id else 'anonymous'}")
    print(f"  Interactions: {len(profile.interactions) if profile else 0}")
    print(f"  Model path: {config.scoring.model_path or '(none)'}")

    with RecommendationEngine(config) as engine:
        print(f"  Model active: {engine.model_available}")
        if engine.scoring.model_error is not None:
            print(f"  ⚠️  Model unavailable: {engine.scoring.model_error}")

        print_section("Feature Vectors")
        consumer_features = engine.extractor.extract_consumer_features(profile)
        print_vector("consumer", consumer_features)
        item_features = []
        for item in items:
            features = engine.extractor.extract_item_features(item)
            item_features.append(features)
            print_vector(item.id[:24], features)

        print_section("Candidate Scores")
        scores = engine.scoring.score_batch(consumer_features, item_features)
        ranked = sorted(zip(items, scores), key=lambda pair: pair[1][0], reverse=True)
        for item, (score, source) in ranked:
            print(f"  {item.id:24s} cat={item.category_id or '-':12s} score={score:.4f} ({source})")

        print_section("Selection")
        recommendation = engine.get_recommendations(items, profile, min_count, max_count)
        print(f"\n  Selected: {recommendation.total}")
        print(f"  Categories: {', '.join(sorted(recommendation.categories)) or '(none)'}")
        print(f"  Diversity score: {recommendation.diversity_score:.2f}")
        print(f"  Used fallback: {recommendation.used_fallback}")
        for i, candidate in enumerate(recommendation.items, 1):
            print(f"\n  {i}. {candidate.item.id}")
            print(f"     Score: {candidate.score:.4f} ({candidate.source})")
            print(f"     Reasons: {', '.join(candidate.reasons)}")

        if not recommendation.items:
            print("\n❌ No recommendations generated!")

    return recommendation.to_dict()


def main():
    parser = argparse.ArgumentParser(description="Debug the recommendation engine")
    parser.add_argument("candidates", type=Path, help="JSON file with candidate articles")
    parser.add_argument("--profile", type=Path, help="JSON file with the reader's interaction history")
    parser.add_argument("--consumer", help="Reader id (overrides the id in the profile file)")
    parser.add_argument("--config", type=Path, help="Engine config file (default: recommender_config.json)")
    parser.add_argument("--min", dest="min_count", type=int, help="Minimum number of items")
    parser.add_argument("--max", dest="max_count", type=int, help="Maximum number of items")
    parser.add_argument("--json", action="store_true", help="Also print the result as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(debug=args.debug)
    try:
        result = debug_recommendations(
            args.candidates,
            profile_file=args.profile,
            consumer_id=args.consumer,
            config_file=args.config,
            min_count=args.min_count,
            max_count=args.max_count,
        )
        if args.json:
            print(json.dumps(result, indent=2, ensure_ascii=False))
    finally:
        stop_logging()


if __name__ == "__main__":
    main()
