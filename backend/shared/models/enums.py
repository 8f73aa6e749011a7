"""Domain enumerations for the Live Feed service."""
from __future__ import annotations

from enum import Enum


class ProviderStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"

    @property
    def severity(self) -> int:
        """Numeric level exported on the provider status gauge."""
        return _STATUS_SEVERITY[self]


_STATUS_SEVERITY: dict[ProviderStatus, int] = {
    ProviderStatus.HEALTHY: 0,
    ProviderStatus.DEGRADED: 1,
    ProviderStatus.DOWN: 2,
}


class ScoreStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    HALFTIME = "halftime"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"


class MarketStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    SETTLED = "settled"


class OddsFormat(str, Enum):
    DECIMAL = "decimal"
    AMERICAN = "american"
    FRACTIONAL = "fractional"


class TaskKind(str, Enum):
    """What a polling task fetches and how its readings are merged."""
    LIVE_SCORES = "live_scores"
    MARKETS = "markets"
