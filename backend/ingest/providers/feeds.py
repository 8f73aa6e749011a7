"""
HTTP feed connectors.

Three upstream shapes are supported:

* ``FlatScoresProvider``: ``/live-scores`` returning ``{"matches": [...]}``
  with flat camelCase records.
* ``NestedScoresProvider``: ``/scores`` returning ``{"data": [...]}`` with
  nested ``home``/``away``/``status`` objects.
* ``OddsFeedProvider``: ``/markets`` returning ``{"markets": [...]}`` with
  decimal odds.

Every connector namespaces canonical ids as ``"{provider_id}-{upstream_id}"``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar

import httpx

from shared.models.domain import LiveScore, LiveScoreQuery, Market, MarketQuery
from shared.models.enums import MarketStatus, OddsFormat, ScoreStatus
from shared.utils.logging import get_logger

from ingest.providers.base import LiveScoreProvider, MarketProvider

logger = get_logger(__name__)

T = TypeVar("T")

NESTED_STATE_TO_STATUS: dict[str, ScoreStatus] = {
    "scheduled": ScoreStatus.SCHEDULED,
    "in_progress": ScoreStatus.LIVE,
    "half_time": ScoreStatus.HALFTIME,
    "finished": ScoreStatus.FINISHED,
    "postponed": ScoreStatus.POSTPONED,
    "cancelled": ScoreStatus.CANCELLED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _score_status(value: Optional[str]) -> ScoreStatus:
    try:
        return ScoreStatus((value or "").strip().lower())
    except ValueError:
        return ScoreStatus.SCHEDULED


def _market_status(value: Optional[str]) -> MarketStatus:
    try:
        return MarketStatus((value or "").strip().lower())
    except ValueError:
        return MarketStatus.ACTIVE


def _is_not_found(exc: httpx.HTTPStatusError) -> bool:
    return exc.response.status_code == 404


def _parse_records(
    provider_id: str,
    records: Iterable[Any],
    parse: Callable[[dict[str, Any]], T],
    event: str,
    id_field: str = "id",
) -> list[T]:
    """Parse records one by one; a malformed record is logged and skipped."""
    parsed: list[T] = []
    for record in records:
        try:
            parsed.append(parse(record))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            upstream_id = record.get(id_field) if isinstance(record, dict) else None
            logger.warning(
                event,
                provider=provider_id,
                upstream_id=upstream_id,
                error=f"{type(exc).__name__}: {exc}",
            )
    return parsed


class FlatScoresProvider(LiveScoreProvider):
    """Live scores from a feed with flat camelCase match records."""

    async def _health_check(self) -> bool:
        data = await self._http.get_json("/health")
        return isinstance(data, dict) and data.get("status") == "ok"

    async def _fetch_live_scores(self, query: LiveScoreQuery) -> list[LiveScore]:
        params: dict[str, Any] = {}
        if query.sport:
            params["sport"] = query.sport
        if query.league:
            params["league"] = query.league
        if query.match_ids:
            params["matchIds"] = ",".join(query.match_ids)

        data = await self._http.get_json("/live-scores", params=params)
        return _parse_records(
            self.id, data.get("matches", []), self._parse_match, "live_score_parse_skipped"
        )

    async def _fetch_match_score(self, match_id: str) -> Optional[LiveScore]:
        upstream_id = match_id.removeprefix(f"{self.id}-")
        try:
            data = await self._http.get_json(f"/live-scores/{upstream_id}")
        except httpx.HTTPStatusError as exc:
            if _is_not_found(exc):
                return None
            raise
        return self._parse_match(data)

    def _parse_match(self, match: dict[str, Any]) -> LiveScore:
        upstream_id = str(match["id"])
        return LiveScore(
            match_id=f"{self.id}-{upstream_id}",
            provider_match_id=upstream_id,
            provider=self.id,
            sport=match["sport"],
            league=match.get("league"),
            home_team=match["homeTeam"],
            away_team=match["awayTeam"],
            home_score=int(match.get("homeScore") or 0),
            away_score=int(match.get("awayScore") or 0),
            period=str(match.get("period") or ""),
            status=_score_status(match.get("status")),
            start_time=match.get("startTime"),
            timestamp=match.get("updatedAt") or _utcnow(),
        )


class NestedScoresProvider(LiveScoreProvider):
    """Live scores from a feed with nested team and status objects."""

    async def _health_check(self) -> bool:
        await self._http.get_json("/ping")
        return True

    async def _fetch_live_scores(self, query: LiveScoreQuery) -> list[LiveScore]:
        data = await self._http.get_json("/scores", params={"sport": query.sport or "all"})
        return _parse_records(
            self.id,
            data.get("data", []),
            lambda m: self._parse_match(m, query.sport),
            "live_score_parse_skipped",
            id_field="match_id",
        )

    async def _fetch_match_score(self, match_id: str) -> Optional[LiveScore]:
        upstream_id = match_id.removeprefix(f"{self.id}-")
        try:
            data = await self._http.get_json(f"/scores/{upstream_id}")
        except httpx.HTTPStatusError as exc:
            if _is_not_found(exc):
                return None
            raise
        # Single-match lookups carry no sport
        return self._parse_match(data, None)

    def _parse_match(self, match: dict[str, Any], sport: Optional[str]) -> LiveScore:
        upstream_id = str(match["match_id"])
        home = match.get("home") or {}
        away = match.get("away") or {}
        status = match.get("status") or {}
        return LiveScore(
            match_id=f"{self.id}-{upstream_id}",
            provider_match_id=upstream_id,
            provider=self.id,
            sport=sport or "unknown",
            league=match.get("competition"),
            home_team=home.get("name", ""),
            away_team=away.get("name", ""),
            home_score=int(home.get("score") or 0),
            away_score=int(away.get("score") or 0),
            period=str(status.get("period") or ""),
            status=NESTED_STATE_TO_STATUS.get(
                str(status.get("state", "")).lower(), ScoreStatus.SCHEDULED
            ),
            start_time=match.get("scheduled_at"),
            timestamp=_utcnow(),
        )


class OddsFeedProvider(MarketProvider):
    """Decimal-odds market feed."""

    async def _health_check(self) -> bool:
        data = await self._http.get_json("/health")
        return isinstance(data, dict) and data.get("status") == "ok"

    async def _fetch_markets(self, query: MarketQuery) -> list[Market]:
        params: dict[str, Any] = {}
        if query.sport:
            params["sport"] = query.sport
        if query.league:
            params["league"] = query.league
        if query.event_ids:
            params["events"] = ",".join(query.event_ids)
        if query.market_types:
            params["types"] = ",".join(query.market_types)

        data = await self._http.get_json("/markets", params=params)
        return _parse_records(
            self.id, data.get("markets", []), self._parse_market, "market_parse_skipped"
        )

    def _parse_market(self, market: dict[str, Any]) -> Market:
        upstream_id = str(market["id"])
        return Market(
            id=f"{self.id}-{upstream_id}",
            provider_market_id=upstream_id,
            provider=self.id,
            sport=market["sport"],
            league=market.get("league"),
            event_id=str(market["eventId"]),
            event_name=market.get("eventName", ""),
            market_type=market["type"],
            selection=market["selection"],
            odds=float(market["odds"]),
            odds_format=OddsFormat.DECIMAL,
            status=_market_status(market.get("status")),
            updated_at=market.get("updatedAt") or _utcnow(),
        )
