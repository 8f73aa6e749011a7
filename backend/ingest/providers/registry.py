"""
Provider registry: named providers, health snapshots and recovery probes.
"""
from __future__ import annotations

import asyncio
from typing import Iterable, Iterator

from shared.config import Settings, get_settings
from shared.models.domain import ProviderConfig, ProviderHealth
from shared.models.enums import ProviderStatus
from shared.utils.logging import get_logger

from ingest.providers.base import BaseProvider, LiveScoreProvider, MarketProvider
from ingest.providers.feeds import FlatScoresProvider, NestedScoresProvider, OddsFeedProvider

logger = get_logger(__name__)


class ProviderRegistry:
    """Holds every configured provider keyed by id."""

    def __init__(self, providers: Iterable[BaseProvider] = ()) -> None:
        self._providers: dict[str, BaseProvider] = {}
        for provider in providers:
            self.add(provider)

    def add(self, provider: BaseProvider) -> None:
        if provider.id in self._providers:
            raise ValueError(f"Provider '{provider.id}' is already registered")
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> BaseProvider:
        return self._providers[provider_id]

    def __iter__(self) -> Iterator[BaseProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def live_score_providers(self) -> list[LiveScoreProvider]:
        return [p for p in self if isinstance(p, LiveScoreProvider)]

    @property
    def market_providers(self) -> list[MarketProvider]:
        return [p for p in self if isinstance(p, MarketProvider)]

    def health(self) -> dict[str, ProviderHealth]:
        return {p.id: p.get_health() for p in self}

    async def probe_down(self) -> dict[str, bool]:
        """Run health checks on providers currently marked down."""
        down = [p for p in self if p.status == ProviderStatus.DOWN]
        if not down:
            return {}
        results = await asyncio.gather(*(p.health_check() for p in down))
        outcome = {p.id: alive for p, alive in zip(down, results)}
        logger.info("provider_probe_completed", results=outcome)
        return outcome

    async def start_all(self) -> None:
        for provider in self:
            await provider.start()

    async def close_all(self) -> None:
        for provider in self:
            await provider.close()


def build_provider_registry(settings: Settings | None = None) -> ProviderRegistry:
    """Construct the default feed connectors from settings."""
    settings = settings or get_settings()
    timeout = settings.provider_request_timeout_s
    window = settings.provider_response_window

    providers: list[BaseProvider] = [
        FlatScoresProvider(
            ProviderConfig(
                id="flat-scores",
                name="Flat live scores feed",
                base_url=settings.flat_scores_url,
                api_key=settings.flat_scores_api_key or None,
                timeout_s=timeout,
                priority=1,
            ),
            window_size=window,
        ),
        NestedScoresProvider(
            ProviderConfig(
                id="nested-scores",
                name="Nested live scores feed",
                base_url=settings.nested_scores_url,
                api_key=settings.nested_scores_api_key or None,
                timeout_s=timeout,
                priority=2,
            ),
            window_size=window,
        ),
        OddsFeedProvider(
            ProviderConfig(
                id="odds-feed",
                name="Decimal odds feed",
                base_url=settings.odds_feed_url,
                api_key=settings.odds_feed_api_key or None,
                timeout_s=timeout,
                priority=1,
            ),
            window_size=window,
        ),
    ]
    return ProviderRegistry(providers)
