"""
Polling interval resolution for the Live Feed scheduler.
Picks the effective poll interval for a task from the four-level interval table.
"""
from __future__ import annotations

from typing import Optional, Sequence

from shared.config import Settings, get_settings
from shared.models.domain import LiveScoreQuery, MarketQuery, PollingConfig, PollingConfigUpdate
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# Floor that callers of update_interval are expected to enforce; not applied here.
MIN_INTERVAL_MS = 1000


def load_polling_config(settings: Settings | None = None) -> PollingConfig:
    """Build the interval table from settings (LF_POLLING_* env vars)."""
    settings = settings or get_settings()
    return PollingConfig(
        default_interval_ms=settings.polling_default_interval_ms,
        sport_intervals=settings.polling_sport_intervals,
        league_intervals=settings.polling_league_intervals,
        match_intervals=settings.polling_match_intervals,
    )


def resolve_interval_level(
    config: PollingConfig,
    *,
    sport: Optional[str] = None,
    league: Optional[str] = None,
    match_ids: Optional[Sequence[str]] = None,
) -> tuple[int, str]:
    """
    Resolve an interval and report which level of the table supplied it.

    Lookup order, first hit wins:
        1. match (only when exactly one match id is targeted)
        2. league
        3. sport
        4. default

    Unknown keys fall through to the next level.

    Returns:
        (interval_ms, level) where level is "match", "league", "sport" or "default".
    """
    if match_ids and len(match_ids) == 1:
        interval = config.match_intervals.get(match_ids[0])
        if interval is not None:
            return interval, "match"

    if league:
        interval = config.league_intervals.get(league)
        if interval is not None:
            return interval, "league"

    if sport:
        interval = config.sport_intervals.get(sport)
        if interval is not None:
            return interval, "sport"

    return config.default_interval_ms, "default"


def resolve_interval(
    config: PollingConfig,
    *,
    sport: Optional[str] = None,
    league: Optional[str] = None,
    match_ids: Optional[Sequence[str]] = None,
) -> int:
    """Effective polling interval in milliseconds."""
    interval, _ = resolve_interval_level(config, sport=sport, league=league, match_ids=match_ids)
    return interval


class IntervalResolver:
    """Holds the current interval table and resolves task queries against it."""

    def __init__(self, config: PollingConfig) -> None:
        self._config = config

    @property
    def config(self) -> PollingConfig:
        return self._config

    def replace(self, config: PollingConfig) -> None:
        self._config = config
        logger.info("polling_config_replaced", default_interval_ms=config.default_interval_ms)

    def merge(self, updates: PollingConfigUpdate) -> PollingConfig:
        self._config = self._config.merged(updates)
        logger.info(
            "polling_config_merged",
            fields=sorted(updates.model_dump(exclude_none=True).keys()),
        )
        return self._config

    def resolve(self, query: LiveScoreQuery | MarketQuery) -> int:
        # Market queries are never match-scoped
        match_ids = query.match_ids if isinstance(query, LiveScoreQuery) else None
        interval, level = resolve_interval_level(
            self._config,
            sport=query.sport,
            league=query.league,
            match_ids=match_ids,
        )
        logger.debug(
            "interval_resolved",
            sport=query.sport,
            league=query.league,
            level=level,
            interval_ms=interval,
        )
        return interval
