"""
Unit tests for polling interval resolution.

Run: pytest backend/tests/test_interval_resolver.py -v
"""
from __future__ import annotations

from shared.config import Settings
from shared.models.domain import (
    LiveScoreQuery,
    MarketQuery,
    PollingConfig,
    PollingConfigUpdate,
)
from scheduler.engine.polling import (
    IntervalResolver,
    load_polling_config,
    resolve_interval,
    resolve_interval_level,
)


def _table(**overrides: dict[str, int]) -> PollingConfig:
    tables = {
        "sport_intervals": {"basketball": 5000},
        "league_intervals": {"nba": 3000},
        "match_intervals": {"nba-finals-g7": 2000},
    }
    tables.update(overrides)
    return PollingConfig(default_interval_ms=30000, **tables)


# ── Specificity fallback ────────────────────────────────────────────────

def test_single_match_uses_match_interval() -> None:
    config = _table()
    assert resolve_interval_level(
        config, sport="basketball", league="nba", match_ids=["nba-finals-g7"]
    ) == (2000, "match")


def test_falls_back_to_league_without_match_entry() -> None:
    config = _table(match_intervals={})
    assert resolve_interval_level(
        config, sport="basketball", league="nba", match_ids=["nba-finals-g7"]
    ) == (3000, "league")


def test_falls_back_to_sport_without_league_entry() -> None:
    config = _table(match_intervals={}, league_intervals={})
    assert resolve_interval_level(
        config, sport="basketball", league="nba", match_ids=["nba-finals-g7"]
    ) == (5000, "sport")


def test_falls_back_to_default_without_sport_entry() -> None:
    config = _table(match_intervals={}, league_intervals={}, sport_intervals={})
    assert resolve_interval_level(
        config, sport="basketball", league="nba", match_ids=["nba-finals-g7"]
    ) == (30000, "default")


def test_match_level_ignored_for_multiple_match_ids() -> None:
    config = _table()
    interval = resolve_interval(
        config, sport="basketball", league="nba", match_ids=["nba-finals-g7", "other"]
    )
    assert interval == 3000


def test_unknown_keys_fall_through_silently() -> None:
    config = _table()
    assert resolve_interval(config, sport="curling", league="nope", match_ids=["x"]) == 30000
    assert resolve_interval(config) == 30000


# ── IntervalResolver ────────────────────────────────────────────────────

def test_resolver_market_queries_skip_match_level() -> None:
    resolver = IntervalResolver(_table(league_intervals={}))
    assert resolver.resolve(MarketQuery(sport="basketball", league="nba")) == 5000
    assert resolver.resolve(LiveScoreQuery(sport="basketball", match_ids=["nba-finals-g7"])) == 2000


def test_resolver_merge_keeps_absent_keys() -> None:
    resolver = IntervalResolver(_table())
    merged = resolver.merge(
        PollingConfigUpdate(league_intervals={"wnba": 4000}, sport_intervals={"basketball": 6000})
    )
    assert merged.league_intervals == {"nba": 3000, "wnba": 4000}
    assert merged.sport_intervals == {"basketball": 6000}
    assert merged.match_intervals == {"nba-finals-g7": 2000}
    assert merged.default_interval_ms == 30000
    assert resolver.config is merged


def test_resolver_replace_swaps_whole_table() -> None:
    resolver = IntervalResolver(_table())
    resolver.replace(PollingConfig(default_interval_ms=45000))
    assert resolver.resolve(LiveScoreQuery(sport="basketball", league="nba")) == 45000


def test_merge_replaces_default_only_when_given() -> None:
    config = _table()
    assert config.merged(PollingConfigUpdate()).default_interval_ms == 30000
    assert config.merged(PollingConfigUpdate(default_interval_ms=15000)).default_interval_ms == 15000


# ── Settings ────────────────────────────────────────────────────────────

def test_load_polling_config_from_settings() -> None:
    settings = Settings(
        polling_default_interval_ms=20000,
        polling_match_intervals={"super-bowl": 2000},
    )
    config = load_polling_config(settings)
    assert config.default_interval_ms == 20000
    assert config.match_intervals == {"super-bowl": 2000}
    assert config.league_intervals["nfl"] == 5000
    assert config.sport_intervals["cricket"] == 60000
