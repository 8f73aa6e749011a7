"""
Pydantic v2 domain models shared across the Live Feed packages.
Readings, aggregates and health snapshots are frozen: once produced they are
only ever superseded, never edited in place.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import (
    MarketStatus,
    OddsFormat,
    ProviderStatus,
    ScoreStatus,
    TaskKind,
)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)


# ── Providers ───────────────────────────────────────────────────────────
class ProviderConfig(DomainModel):
    id: str
    name: str
    base_url: str
    api_key: Optional[str] = None
    timeout_s: float = Field(default=10.0, gt=0)
    enabled: bool = True
    priority: int = Field(default=100, description="Lower number = higher priority")
    max_retries: int = Field(default=1, ge=1, description="HTTP attempts per request")
    retry_delay_s: float = 1.0


class ProviderHealth(DomainModel):
    """Point-in-time copy of a provider's health record."""
    provider_id: str
    status: ProviderStatus = ProviderStatus.HEALTHY
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    consecutive_failures: int = 0
    average_response_time_ms: Optional[float] = None
    error_rate: float = 0.0
    last_error: Optional[str] = None
    total_successes: int = 0
    total_failures: int = 0


# ── Readings ────────────────────────────────────────────────────────────
class LiveScore(DomainModel):
    """One provider's view of a match score."""
    match_id: str
    provider_match_id: str
    provider: str
    sport: str
    league: Optional[str] = None
    home_team: str
    away_team: str
    home_score: int = 0
    away_score: int = 0
    period: str = ""
    status: ScoreStatus = ScoreStatus.SCHEDULED
    start_time: Optional[datetime] = None
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def score_tuple(self) -> tuple[int, int]:
        return (self.home_score, self.away_score)


class Market(DomainModel):
    """One provider's quote for a single market selection."""
    id: str
    provider_market_id: str
    provider: str
    sport: str
    league: Optional[str] = None
    event_id: str
    event_name: str = ""
    market_type: str
    selection: str
    odds: float = Field(gt=0)
    odds_format: OddsFormat = OddsFormat.DECIMAL
    status: MarketStatus = MarketStatus.ACTIVE
    updated_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Aggregates ──────────────────────────────────────────────────────────
class AggregatedLiveScore(LiveScore):
    sources: tuple[str, ...]
    confidence: float = Field(ge=0.0, le=1.0)


class OddsQuote(DomainModel):
    provider_id: str
    odds: float


class AggregatedMarket(Market):
    sources: tuple[str, ...]
    best_odds: float
    average_odds: float
    confidence: float = Field(ge=0.0, le=1.0)
    quotes: tuple[OddsQuote, ...] = ()


# ── Polling ─────────────────────────────────────────────────────────────
class PollingConfig(DomainModel):
    """
    Four-level polling interval table, in milliseconds.

    Lookup order is match > league > sport > default; see
    scheduler.engine.polling.resolve_interval.
    """
    default_interval_ms: int = Field(gt=0)
    sport_intervals: dict[str, int] = Field(default_factory=dict)
    league_intervals: dict[str, int] = Field(default_factory=dict)
    match_intervals: dict[str, int] = Field(default_factory=dict)

    def merged(self, updates: "PollingConfigUpdate") -> "PollingConfig":
        """Return a new table with present keys overwritten and absent keys kept."""
        return PollingConfig(
            default_interval_ms=updates.default_interval_ms or self.default_interval_ms,
            sport_intervals={**self.sport_intervals, **(updates.sport_intervals or {})},
            league_intervals={**self.league_intervals, **(updates.league_intervals or {})},
            match_intervals={**self.match_intervals, **(updates.match_intervals or {})},
        )


class PollingConfigUpdate(DomainModel):
    default_interval_ms: Optional[int] = Field(default=None, gt=0)
    sport_intervals: Optional[dict[str, int]] = None
    league_intervals: Optional[dict[str, int]] = None
    match_intervals: Optional[dict[str, int]] = None


class LiveScoreQuery(DomainModel):
    sport: Optional[str] = None
    league: Optional[str] = None
    match_ids: Optional[list[str]] = None


class MarketQuery(DomainModel):
    sport: Optional[str] = None
    league: Optional[str] = None
    event_ids: Optional[list[str]] = None
    market_types: Optional[list[str]] = None


class TaskStatus(DomainModel):
    id: str
    kind: TaskKind
    interval_ms: int
    last_run: Optional[datetime] = None
    next_run: datetime
    running: bool = False
    executions: int = 0
    last_failures: tuple[str, ...] = ()
