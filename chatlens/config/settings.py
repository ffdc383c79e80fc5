"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Every threshold below was chosen empirically. They are exposed here so a
    deployment can tune them without touching the stage code.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Correction Store
    store_backend: Literal["memory", "file", "sqlite"] = "file"
    store_path: Path = Path.home() / ".chatlens"
    max_role_corrections: int = 500
    max_structure_corrections: int = 200

    # Weight learning
    learning_rate: float = 0.15
    max_weight_delta: float = 3.0
    recency_decay_days: float = 30.0
    min_weight_delta: float = 0.01

    # Sequence optimization
    initial_ai_prior: float = 0.5

    # Semantic grouping
    similarity_threshold: float = 0.08
    vector_scan_chars: int = 5000
    max_keywords: int = 400

    # Group smoothing
    representative_topic_ratio: float = 0.3
    log_group_ratio: float = 0.5
    answer_min_chars: int = 100

    # Message cleanup
    strip_trailing_invitations: bool = True

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
