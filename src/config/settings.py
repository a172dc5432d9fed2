# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for cache sizing, matching and logging settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache ===
    cache_enabled: bool = True
    cache_file: Path = Path("~/.answercache/question_cache.json")

    # Sizing / eviction
    cache_max_size: int = 10_000
    cache_high_water: int = 9_000
    cache_target_size: int = 7_500
    fast_path_size: int = 500

    # Matching
    similarity_threshold: float = 0.85
    similarity_token_cap: int = 200
    max_question_length: int = 10_000
    duplicate_window_seconds: float = 5.0

    # Staleness / pruning
    staleness_days: float = 30.0
    prune_max_age_days: float = 90.0
    prune_min_accesses: int = 5

    # === Maintenance ===
    maintenance_interval_seconds: float = 300.0
    write_flush_window_seconds: float = 30.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("similarity_threshold")
    @classmethod
    def validate_similarity_threshold(cls, v: float) -> float:  # noqa: N805
        if not 0.0 <= v <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        return v

    @field_validator(
        "cache_max_size", "similarity_token_cap", "max_question_length",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("fast_path_size", "prune_min_accesses")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field eviction sizing rules."""
        errors: list[str] = []

        if self.cache_high_water > self.cache_max_size:
            errors.append("CACHE_HIGH_WATER must be <= CACHE_MAX_SIZE")

        if self.cache_target_size >= self.cache_high_water:
            errors.append("CACHE_TARGET_SIZE must be < CACHE_HIGH_WATER")

        if self.cache_target_size < 0:
            errors.append("CACHE_TARGET_SIZE must be >= 0")

        if self.maintenance_interval_seconds <= 0:
            errors.append("MAINTENANCE_INTERVAL_SECONDS must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_path(self) -> Path:
        """Cache file with the user directory expanded."""
        return self.cache_file.expanduser()


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding hosts).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
