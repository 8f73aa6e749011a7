"""
Shared fixtures and in-memory providers for the Live Feed tests.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from shared.config import Settings
from shared.models.domain import (
    LiveScore,
    LiveScoreQuery,
    Market,
    MarketQuery,
    PollingConfig,
    ProviderConfig,
)
from ingest.providers.base import LiveScoreProvider, MarketProvider, ProviderFetchError

BASE_TS = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_score(
    provider: str,
    home: str = "Kansas City Chiefs",
    away: str = "Buffalo Bills",
    home_score: int = 14,
    away_score: int = 10,
    *,
    sport: str = "football",
    seconds: int = 0,
    period: str = "Q2",
) -> LiveScore:
    return LiveScore(
        match_id=f"{provider}-m1",
        provider_match_id="m1",
        provider=provider,
        sport=sport,
        league="nfl",
        home_team=home,
        away_team=away,
        home_score=home_score,
        away_score=away_score,
        period=period,
        status="live",
        timestamp=BASE_TS + timedelta(seconds=seconds),
    )


def make_market(
    provider: str,
    odds: float,
    *,
    event_id: str = "evt-1",
    market_type: str = "moneyline",
    selection: str = "home",
) -> Market:
    return Market(
        id=f"{provider}-{event_id}-{selection}",
        provider_market_id=f"{event_id}-{selection}",
        provider=provider,
        sport="basketball",
        league="nba",
        event_id=event_id,
        event_name="Lakers @ Celtics",
        market_type=market_type,
        selection=selection,
        odds=odds,
        updated_at=BASE_TS,
    )


def stub_config(provider_id: str, **overrides: object) -> ProviderConfig:
    values: dict[str, object] = {
        "id": provider_id,
        "name": provider_id,
        "base_url": "http://stub.invalid",
        "timeout_s": 2.0,
    }
    values.update(overrides)
    return ProviderConfig(**values)


class StubScoresProvider(LiveScoreProvider):
    """Returns canned scores; can be slowed down, blocked or made to fail."""

    def __init__(
        self,
        provider_id: str,
        scores: list[LiveScore] | None = None,
        *,
        delay_s: float = 0.0,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
        **config: object,
    ) -> None:
        super().__init__(stub_config(provider_id, **config))
        self.scores = scores or []
        self.delay_s = delay_s
        self.error = error
        self.gate = gate
        self.alive = True
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def _health_check(self) -> bool:
        return self.alive

    async def _fetch_live_scores(self, query: LiveScoreQuery) -> list[LiveScore]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if self.error is not None:
                raise self.error
            return list(self.scores)
        finally:
            self.in_flight -= 1

    async def _fetch_match_score(self, match_id: str) -> Optional[LiveScore]:
        return next((s for s in self.scores if s.match_id == match_id), None)


class StubMarketsProvider(MarketProvider):
    def __init__(
        self,
        provider_id: str,
        markets: list[Market] | None = None,
        *,
        error: Optional[Exception] = None,
        **config: object,
    ) -> None:
        super().__init__(stub_config(provider_id, **config))
        self.markets = markets or []
        self.error = error
        self.queries: list[MarketQuery] = []

    async def _health_check(self) -> bool:
        return True

    async def _fetch_markets(self, query: MarketQuery) -> list[Market]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.markets)


async def force_down(provider: StubScoresProvider) -> None:
    """Drive a stub provider past the down threshold through failed fetches."""
    saved, provider.error = provider.error, RuntimeError("upstream unavailable")
    for _ in range(4):
        with pytest.raises(ProviderFetchError):
            await provider.fetch_live_scores(LiveScoreQuery())
    provider.error = saved


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def settings() -> Settings:
    return Settings(
        scheduler_tick_interval_s=0.01,
        provider_probe_interval_s=30.0,
        metrics_enabled=False,
    )


@pytest.fixture
def polling_config() -> PollingConfig:
    return PollingConfig(
        default_interval_ms=1000,
        sport_intervals={"football": 10000},
        league_intervals={"nba": 3000},
        match_intervals={"match-final": 2000},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
