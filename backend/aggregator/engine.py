"""
Cross-provider aggregation of live scores and market odds.

Both merges are single passes over the readings in input order. Readings are
grouped by a match key; the first reading seeds the group and every later one
is folded in. Output preserves first-appearance order of the groups.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from statistics import fmean
from typing import Sequence

from shared.models.domain import (
    AggregatedLiveScore,
    AggregatedMarket,
    LiveScore,
    Market,
    OddsQuote,
)
from shared.models.enums import TaskKind
from shared.models.results import ProviderReadings
from shared.utils.logging import get_logger
from shared.utils.metrics import AGGREGATION_CONFIDENCE

from aggregator.confidence import market_confidence, relative_odds_diff, score_confidence

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_team(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


def score_key(score: LiveScore) -> str:
    return f"{score.sport}:{normalize_team(score.home_team)}:{normalize_team(score.away_team)}"


def market_key(market: Market) -> tuple[str, str, str]:
    return (market.event_id, market.market_type, market.selection)


def _as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


@dataclass
class _ScoreGroup:
    current: LiveScore
    sources: list[str]
    confidence: float = 1.0

    def absorb(self, provider_id: str, score: LiveScore) -> None:
        self.sources.append(provider_id)
        scores_match = score.score_tuple == self.current.score_tuple
        if _as_utc(score.timestamp) > _as_utc(self.current.timestamp):
            self.current = self.current.model_copy(
                update={
                    "home_score": score.home_score,
                    "away_score": score.away_score,
                    "period": score.period,
                    "status": score.status,
                    "timestamp": score.timestamp,
                }
            )
        self.confidence = score_confidence(len(self.sources), scores_match)

    def freeze(self) -> AggregatedLiveScore:
        return AggregatedLiveScore(
            **self.current.model_dump(),
            sources=tuple(self.sources),
            confidence=self.confidence,
        )


@dataclass
class _MarketGroup:
    primary: Market
    sources: list[str]
    quotes: list[OddsQuote] = field(default_factory=list)
    confidence: float = 1.0

    def absorb(self, provider_id: str, market: Market) -> None:
        diff = relative_odds_diff(self.primary.odds, market.odds)
        self.sources.append(provider_id)
        self.quotes.append(OddsQuote(provider_id=provider_id, odds=market.odds))
        if market.odds > self.primary.odds:
            self.primary = self.primary.model_copy(
                update={
                    "id": market.id,
                    "provider": market.provider,
                    "provider_market_id": market.provider_market_id,
                    "odds": market.odds,
                }
            )
        self.confidence = market_confidence(len(self.sources), diff)

    def freeze(self) -> AggregatedMarket:
        odds = [q.odds for q in self.quotes]
        return AggregatedMarket(
            **self.primary.model_dump(),
            sources=tuple(self.sources),
            best_odds=max(odds),
            average_odds=round(fmean(odds), 4),
            confidence=self.confidence,
            quotes=tuple(self.quotes),
        )


class DataAggregator:
    """Merges per-provider readings of the same entity into one view."""

    def aggregate_live_scores(
        self, batches: Sequence[ProviderReadings[LiveScore]]
    ) -> list[AggregatedLiveScore]:
        groups: dict[str, _ScoreGroup] = {}
        for batch in batches:
            for score in batch.readings:
                key = score_key(score)
                group = groups.get(key)
                if group is None:
                    groups[key] = _ScoreGroup(current=score, sources=[batch.provider_id])
                else:
                    group.absorb(batch.provider_id, score)

        merged = [g.freeze() for g in groups.values()]
        self._observe(TaskKind.LIVE_SCORES, merged)
        logger.debug(
            "live_scores_aggregated",
            providers=len(batches),
            readings=sum(len(b.readings) for b in batches),
            merged=len(merged),
        )
        return merged

    def aggregate_markets(
        self, batches: Sequence[ProviderReadings[Market]]
    ) -> list[AggregatedMarket]:
        groups: dict[tuple[str, str, str], _MarketGroup] = {}
        for batch in batches:
            for market in batch.readings:
                key = market_key(market)
                group = groups.get(key)
                if group is None:
                    groups[key] = _MarketGroup(
                        primary=market,
                        sources=[batch.provider_id],
                        quotes=[OddsQuote(provider_id=batch.provider_id, odds=market.odds)],
                    )
                else:
                    group.absorb(batch.provider_id, market)

        merged = [g.freeze() for g in groups.values()]
        self._observe(TaskKind.MARKETS, merged)
        logger.debug(
            "markets_aggregated",
            providers=len(batches),
            readings=sum(len(b.readings) for b in batches),
            merged=len(merged),
        )
        return merged

    @staticmethod
    def _observe(kind: TaskKind, merged: Sequence[AggregatedLiveScore | AggregatedMarket]) -> None:
        histogram = AGGREGATION_CONFIDENCE.labels(kind=kind.value)
        for item in merged:
            histogram.observe(item.confidence)
