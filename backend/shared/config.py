"""
Central configuration for the Live Feed services.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings shared across the scheduler and provider adapters."""

    model_config = SettingsConfigDict(
        env_prefix="LF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Pod/container ID bound to every log entry")

    # ── Scheduler ────────────────────────────────────────────
    scheduler_tick_interval_s: float = 1.0
    provider_probe_interval_s: float = Field(
        default=30.0,
        description="How often providers marked down are probed so they can recover.",
    )

    # ── Polling intervals (milliseconds) ─────────────────────
    polling_default_interval_ms: int = 30000
    polling_sport_intervals: dict[str, int] = Field(
        default={
            "football": 10000,
            "basketball": 5000,
            "soccer": 15000,
            "baseball": 30000,
            "hockey": 10000,
            "tennis": 5000,
            "cricket": 60000,
        }
    )
    polling_league_intervals: dict[str, int] = Field(
        default={
            "nfl": 5000,
            "ncaa-football": 10000,
            "nba": 3000,
            "ncaa-basketball": 5000,
            "premier-league": 10000,
            "champions-league": 10000,
            "mls": 15000,
            "mlb": 30000,
            "atp": 3000,
            "wta": 3000,
        }
    )
    polling_match_intervals: dict[str, int] = Field(default_factory=dict)

    # ── Provider ─────────────────────────────────────────────
    provider_request_timeout_s: float = 10.0
    provider_response_window: int = Field(
        default=100, description="Response-time samples kept per provider for the rolling average."
    )

    flat_scores_url: str = "https://api.provider-a.com"
    flat_scores_api_key: str = ""
    nested_scores_url: str = "https://api.provider-b.com"
    nested_scores_api_key: str = ""
    odds_feed_url: str = "https://api.provider-a.com"
    odds_feed_api_key: str = ""

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
