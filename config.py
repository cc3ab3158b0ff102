"""
Configuration settings for the learnpath service.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are read with the LEARNPATH_ prefix (e.g. LEARNPATH_DATABASE_URL).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LEARNPATH_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./learnpath.db",
        description="SQLAlchemy connection string for the progression store",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/learnpath.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8100,
        description="API server port",
    )

    # ========================================
    # Content Generation
    # ========================================
    generator_url: str | None = Field(
        default=None,
        description="Base URL of the lesson content generator (None uses templates)",
    )
    generator_api_key: str | None = Field(
        default=None,
        description="Bearer token sent to the content generator",
    )
    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single content generation call",
    )
    generator_fallback_to_template: bool = Field(
        default=True,
        description="Degrade to templated lessons when the generator errors (timeouts still fail)",
    )

    # ========================================
    # Prerequisites
    # ========================================
    prerequisite_catalog: str | None = Field(
        default=None,
        description="Prerequisite catalog source: path to a JSON file, 'database', or None for level defaults",
    )

    # ========================================
    # Path Building & Progression
    # ========================================
    checkpoint_interval: int = Field(
        default=3,
        ge=1,
        description="Insert a checkpoint after every N steps",
    )
    default_passing_score: float = Field(
        default=70.0,
        ge=0,
        le=100,
        description="Passing score for newly built checkpoints",
    )
    max_conflict_retries: int = Field(
        default=3,
        ge=1,
        description="Re-fetch attempts after a version conflict before giving up",
    )

    # ========================================
    # Adaptation Policy
    # ========================================
    adaptation_remediation_below: float = Field(
        default=60.0,
        description="Trailing checkpoint average that triggers remediation",
    )
    adaptation_acceleration_above: float = Field(
        default=90.0,
        description="Trailing checkpoint average that triggers acceleration",
    )
    adaptation_min_checkpoints: int = Field(
        default=2,
        ge=1,
        description="Checkpoint scores required before accelerating",
    )
    adaptation_trailing_window: int = Field(
        default=3,
        ge=1,
        description="Number of most recent checkpoint scores averaged",
    )
    adaptation_passing_score_step: float = Field(
        default=10.0,
        ge=0,
        description="Maximum passing score reduction per remediation",
    )
    adaptation_passing_score_floor: float = Field(
        default=50.0,
        ge=0,
        le=100,
        description="Passing scores are never lowered below this value",
    )
    adaptation_branch_below: float | None = Field(
        default=None,
        description="Trailing average that forks an activated remedial branch instead of remediating (None disables)",
    )
    adaptation_slow_step_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Mean time-on-step treated as struggling when no scores exist",
    )

    def has_generator_configured(self) -> bool:
        """Check if a remote content generator is configured."""
        return bool(self.generator_url)

    def get_generation_config(self) -> dict[str, Any]:
        """Get content generation configuration as a dictionary."""
        return {
            "url": self.generator_url,
            "configured": self.has_generator_configured(),
            "timeout_seconds": self.generation_timeout_seconds,
            "fallback_to_template": self.generator_fallback_to_template,
        }

    def get_adaptation_config(self) -> dict[str, Any]:
        """Get adaptation policy thresholds as a dictionary."""
        return {
            "remediation_below": self.adaptation_remediation_below,
            "acceleration_above": self.adaptation_acceleration_above,
            "min_checkpoints": self.adaptation_min_checkpoints,
            "trailing_window": self.adaptation_trailing_window,
            "passing_score": {
                "step": self.adaptation_passing_score_step,
                "floor": self.adaptation_passing_score_floor,
            },
            "branch_below": self.adaptation_branch_below,
            "slow_step_seconds": self.adaptation_slow_step_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
