"""
Configuration settings for the adaptive learning engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///adaptive_engine.db",
        description="SQLAlchemy connection string for review state and pattern snapshots",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # SM-2 Scheduler
    # ========================================
    sm2_initial_ease: float = Field(
        default=2.5,
        description="Ease factor assigned to a newly seen item",
    )
    sm2_minimum_ease: float = Field(
        default=1.3,
        description="Lower bound for the ease factor",
    )

    # ========================================
    # Recommendations
    # ========================================
    weak_mastery_threshold: float = Field(
        default=70.0,
        description="Items with mastery below this score (0-100) count as weak",
    )
    due_share: float = Field(
        default=0.4,
        description="Target share of due-for-review items in a recommendation batch",
    )
    weak_share: float = Field(
        default=0.4,
        description="Target share of weak items in a recommendation batch",
    )
    new_share: float = Field(
        default=0.2,
        description="Target share of unseen items in a recommendation batch",
    )
    recommendation_source_timeout_seconds: float = Field(
        default=2.0,
        description="Per-source timeout; a slow source contributes nothing",
    )

    # ========================================
    # Pattern Learner
    # ========================================
    pattern_confidence_threshold: float = Field(
        default=0.75,
        description="Only learn from annotations at or above this confidence",
    )
    pattern_min_samples: int = Field(
        default=3,
        description="Observations required before a pattern is trusted",
    )
    pattern_approval_weight: int = Field(
        default=2,
        description="Weight of an approved box in the running position mean",
    )
    pattern_correction_weight: int = Field(
        default=3,
        description="Weight of a corrected box in the running position mean",
    )
    pattern_correction_history: int = Field(
        default=50,
        description="Corrections kept per (species, feature)",
    )
    pattern_key_prefix: str = Field(
        default="pattern-learning",
        description="Key prefix for persisted pattern snapshots",
    )
    pattern_persist_retry_seconds: float = Field(
        default=30.0,
        description="Delay before retrying a failed snapshot save",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
