"""
Configuration settings for the xfactor viral growth service.

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
        env_prefix="XFACTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Smart Links
    # ========================================
    base_url: str = Field(
        default="https://varsitytutors.com",
        description="Root URL for invite deep links",
    )
    smart_link_secret: str = Field(
        default="default-secret",
        description="Secret used to sign smart link payloads",
    )
    short_code_length: int = Field(
        default=8,
        description="Length of generated short codes",
    )
    link_expiry_days: int = Field(
        default=30,
        description="Days before a smart link stops resolving",
    )

    # ========================================
    # Event Bus
    # ========================================
    event_history_size: int = Field(
        default=10_000,
        description="Maximum number of events retained for replay/debugging",
    )

    # ========================================
    # Agent Client
    # ========================================
    agent_max_retries: int = Field(
        default=3,
        description="Retries for an agent call that raised",
    )
    agent_retry_delay_ms: int = Field(
        default=100,
        description="Base delay between retries (multiplied by attempt number)",
    )
    circuit_breaker_threshold: int = Field(
        default=5,
        description="Consecutive failures before an agent's circuit opens",
    )
    circuit_breaker_timeout_ms: int = Field(
        default=60_000,
        description="How long an open circuit rejects calls before a trial call",
    )

    # ========================================
    # Invite Policy
    # ========================================
    max_invites_per_day: int = Field(default=5, description="Daily invite cap per user")
    invite_cooldown_minutes: int = Field(default=60, description="Cooldown between invites")
    max_loops_per_trigger: int = Field(default=2, description="Loops selected per trigger")
    fraud_risk_threshold: int = Field(default=50, description="Risk score that vetoes invites")
    max_accounts_per_device: int = Field(
        default=3,
        description="Other accounts a device may be linked to before it is suspicious",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for CLI entry points",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
