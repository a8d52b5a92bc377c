"""
Configuration settings for the v2e-notes learning engine.

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
        env_prefix="V2E_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///data/v2e_notes.db",
        description="SQLAlchemy connection string for the learning store",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)",
    )
    sqlite_busy_timeout_seconds: int = Field(
        default=30,
        description="How long SQLite waits on a locked database before failing",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/v2e_notes.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # SM-2 Settings (for spaced repetition)
    # ========================================
    sm2_initial_ease: float = Field(
        default=2.5,
        description="Ease factor assigned to new cards",
    )
    sm2_min_ease: float = Field(
        default=1.3,
        description="Lower bound for the ease factor",
    )
    sm2_max_ease: float = Field(
        default=3.0,
        description="Upper bound for the ease factor",
    )
    sm2_mastered_repetitions: int = Field(
        default=5,
        description="Consecutive successful reviews before a card is proposed as mastered",
    )

    # ========================================
    # Bookmark Mastery
    # ========================================
    mastery_mastered_threshold: float = Field(
        default=0.9,
        description="Mastery level at which a bookmark becomes 'mastered'",
    )
    mastery_learning_threshold: float = Field(
        default=0.7,
        description="Mastery level at which a bookmark becomes 'learning'",
    )

    # ========================================
    # Navigation
    # ========================================
    strategy_type_fanout: int = Field(
        default=3,
        description="Targets linked per source when building the fallback type graph",
    )

    # ========================================
    # CLI
    # ========================================
    default_page_size: int = Field(
        default=50,
        description="Default page size for listings",
    )

    def get_sm2_config(self) -> dict[str, float | int]:
        """Get SM-2 scheduler configuration as a dictionary."""
        return {
            "initial_ease": self.sm2_initial_ease,
            "min_ease": self.sm2_min_ease,
            "max_ease": self.sm2_max_ease,
            "mastered_repetitions": self.sm2_mastered_repetitions,
            "mastered_threshold": self.mastery_mastered_threshold,
            "learning_threshold": self.mastery_learning_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
