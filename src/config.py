"""Configuration settings using pydantic-settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ELENCHUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Session storage
    sessions_dir: Optional[Path] = None  # None keeps sessions in memory only
    max_sessions: Optional[int] = Field(default=None, ge=1)

    # Round loop
    default_max_rounds: int = Field(default=10, ge=1)
    checkpoint_interval: int = Field(default=2, ge=1)
    convergence_min_rounds: int = Field(default=2, ge=1)
    convergence_stable_rounds: int = Field(default=2, ge=1)

    # Arbiter
    max_context_files: int = 50
    context_expand_threshold: int = 3
    loop_break_window: int = 4
    loop_break_repeats: int = 3

    # Application
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class MediatorConfig(BaseSettings):
    """Thresholds for the mediator's advisory interventions.

    None of these values gate the review loop; they only decide when an
    intervention is worth emitting and how much of it to show.
    """

    model_config = SettingsConfigDict(
        env_prefix="ELENCHUS_MEDIATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    critical_threshold_factor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Files scoring >= max importance * factor start as unverified-critical",
    )
    max_affected_files_display: int = Field(default=10, ge=1)
    max_critical_files_display: int = Field(default=5, ge=1)
    max_cycles_display: int = Field(default=3, ge=1)

    coverage_check_min_round: int = Field(
        default=3,
        description="First round in which unverified critical files are reported",
    )
    low_coverage_check_min_round: int = Field(
        default=5,
        description="First round in which overall low coverage is reported",
    )
    low_coverage_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    drift_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Share of mentioned files outside the target that counts as drift",
    )
    min_files_for_drift: int = Field(
        default=3,
        description="Drift is only considered when strictly more files are mentioned",
    )

    default_max_depth: int = Field(
        default=100,
        ge=1,
        description="Hop limit for dependency-depth searches",
    )
    side_effect_depth: int = Field(default=2, ge=1)
    side_effect_warning_threshold: int = Field(default=5, ge=0)
    ripple_effect_max_depth: int = Field(default=3, ge=1)
    file_importance_threshold: int = Field(
        default=3,
        description="Importance above which an unchecked dependency is flagged without a related issue",
    )


@lru_cache
def get_mediator_config() -> MediatorConfig:
    """Get cached mediator config instance."""
    return MediatorConfig()


class RoleEnforcementConfig(BaseSettings):
    """Configuration for Verifier/Critic role enforcement."""

    model_config = SettingsConfigDict(
        env_prefix="ELENCHUS_ROLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    strict_mode: bool = Field(
        default=False,
        description="Reserved: reject non-compliant rounds instead of warning",
    )
    min_compliance_score: int = Field(default=60, ge=0, le=100)
    allow_role_switch: bool = Field(
        default=False,
        description="Reserved: allow mid-session role changes",
    )
    require_alternation: bool = True

    verdict_uniformity_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Share of identical verdicts above which the critic looks blind",
    )
    min_verdicts_for_uniformity: int = Field(default=2, ge=1)
    max_verifier_phrases: int = Field(
        default=1,
        ge=0,
        description="Verifier-style discovery phrases tolerated in critic output",
    )


@lru_cache
def get_role_config() -> RoleEnforcementConfig:
    """Get cached role enforcement config instance."""
    return RoleEnforcementConfig()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger for embedding applications."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(levelname)s  %(name)s  %(message)s",
    )
