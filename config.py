"""
Configuration settings for activity-flow.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from src.flow.engine import EngineConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Learning Platform API
    # ========================================
    flow_api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the learning platform serving the AI and analytics routes",
    )
    flow_api_key: str | None = Field(
        default=None,
        description="API key sent as X-API-Key",
    )
    flow_api_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for platform calls",
    )
    learner_id: str = Field(
        default="local-learner",
        description="Learner identity used by the CLI when none is given",
    )

    # ========================================
    # Branching
    # ========================================
    quiz_high_score_threshold: float = Field(
        default=80.0,
        description="Quiz score at or above which the high_score connection is taken",
    )
    quiz_medium_score_threshold: float = Field(
        default=60.0,
        description="Quiz score at or above which the medium_score connection is taken",
    )
    ai_performance_threshold: float = Field(
        default=70.0,
        description="AI-assessed score at or above which the mastery path is taken",
    )
    ai_default_performance_score: float = Field(
        default=70.0,
        description="Score assumed when the tutor does not return one",
    )

    # ========================================
    # Completion Gate
    # ========================================
    completion_gate_max_attempts: int = Field(
        default=3,
        description="Misconception queries before the gate clears",
    )
    completion_gate_delay_step_seconds: float = Field(
        default=2.0,
        description="Attempt N waits N * step seconds before querying",
    )

    # ========================================
    # Session Persistence
    # ========================================
    session_dir: Path = Field(
        default=Path.home() / ".activity_flow" / "sessions",
        description="Directory for saved sessions",
    )
    session_expiry_hours: int = Field(
        default=24,
        description="Saved sessions older than this are not resumed",
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

    def get_branching_thresholds(self) -> dict[str, float]:
        """Get branching thresholds as a dictionary."""
        return {
            "high_score": self.quiz_high_score_threshold,
            "medium_score": self.quiz_medium_score_threshold,
            "mastery": self.ai_performance_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_engine_config(settings: Settings | None = None) -> EngineConfig:
    """Engine thresholds and gate policy from settings."""
    from src.flow.engine import EngineConfig

    return EngineConfig.from_settings(settings or get_settings())
