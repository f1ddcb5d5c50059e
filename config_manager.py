"""
Configuration management for the recommendation engine.
Handles loading, validating, and providing access to engine settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional

from recommendation_service.config import (
    CacheConfig,
    EditionConfig,
    EngineConfig,
    FeatureConfig,
    FeedbackConfig,
    ScoringConfig,
    SelectionConfig,
)


class ConfigManager:
    """Manages engine configuration loading and access."""

    def __init__(self, config_file: str = "recommender_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with default config
        self._config = self._get_default_config()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return EngineConfig().to_dict()

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config and isinstance(values, dict):
                self._config[section].update(values)
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        if os.getenv("RECOMMENDER_MODEL_PATH"):
            self._config["scoring"]["model_path"] = os.getenv("RECOMMENDER_MODEL_PATH")

        if os.getenv("RECOMMENDER_MAX_WORKERS"):
            self._config["scoring"]["max_workers"] = int(os.getenv("RECOMMENDER_MAX_WORKERS"))

        if os.getenv("RECOMMENDER_SEED"):
            self._config["features"]["seed"] = int(os.getenv("RECOMMENDER_SEED"))

        if os.getenv("RECOMMENDER_CACHE_TTL"):
            self._config["cache"]["ttl_seconds"] = float(os.getenv("RECOMMENDER_CACHE_TTL"))

        if os.getenv("RECOMMENDER_FEEDBACK_CAPACITY"):
            self._config["feedback"]["capacity"] = int(os.getenv("RECOMMENDER_FEEDBACK_CAPACITY"))

        if os.getenv("RECOMMENDER_FEEDBACK_FILE"):
            self._config["feedback"]["persistence_file"] = os.getenv("RECOMMENDER_FEEDBACK_FILE")

        if os.getenv("RECOMMENDER_FEEDBACK_FLUSH_EVERY"):
            self._config["feedback"]["flush_every"] = int(os.getenv("RECOMMENDER_FEEDBACK_FLUSH_EVERY"))

    def get_engine_config(self) -> EngineConfig:
        """Get the validated engine configuration."""
        return EngineConfig.from_dict(self._config).validate()

    def get_feature_config(self) -> FeatureConfig:
        """Get feature extraction configuration."""
        return self.get_engine_config().features

    def get_scoring_config(self) -> ScoringConfig:
        """Get scoring configuration."""
        return self.get_engine_config().scoring

    def get_selection_config(self) -> SelectionConfig:
        """Get selection configuration."""
        return self.get_engine_config().selection

    def get_cache_config(self) -> CacheConfig:
        """Get cache configuration."""
        return self.get_engine_config().cache

    def get_feedback_config(self) -> FeedbackConfig:
        """Get feedback configuration."""
        return self.get_engine_config().feedback

    def get_edition_config(self) -> EditionConfig:
        """Get edition planning configuration."""
        return self.get_engine_config().edition

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return json.loads(json.dumps(self._config))

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
