"""
Abstract base classes for all sports data providers.
Defines the contract that every provider connector must implement.
"""
from __future__ import annotations

import abc
import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from shared.models.domain import (
    LiveScore,
    LiveScoreQuery,
    Market,
    MarketQuery,
    ProviderConfig,
    ProviderHealth,
)
from shared.models.enums import ProviderStatus
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.health import DEFAULT_WINDOW_SIZE, ProviderHealthTracker

logger = get_logger(__name__)

T = TypeVar("T")


class ProviderFetchError(Exception):
    """A provider call failed or overran its timeout."""

    def __init__(self, provider_id: str, operation: str, reason: str) -> None:
        self.provider_id = provider_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"{provider_id}.{operation} failed: {reason}")


def _describe_failure(exc: BaseException, timeout_s: float) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return f"timeout after {timeout_s}s"
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


class BaseProvider(abc.ABC):
    """
    Base class for sports data providers.

    The base class handles HTTP lifecycle, the per-call timeout and health
    recording. Subclasses implement the underscored fetch hooks and may raise
    anything; callers only ever see ``ProviderFetchError``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: ProviderHTTPClient | None = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> None:
        self._config = config
        self._http = http_client or ProviderHTTPClient.from_config(config)
        self._health = ProviderHealthTracker(config.id, window_size)

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def priority(self) -> int:
        return self._config.priority

    @property
    def status(self) -> ProviderStatus:
        return self._health.status

    async def start(self) -> None:
        """Initialize the provider HTTP client."""
        await self._http.start()

    async def close(self) -> None:
        """Shutdown the provider HTTP client."""
        await self._http.close()

    def get_health(self) -> ProviderHealth:
        """Immutable snapshot of this provider's health."""
        return self._health.snapshot()

    async def health_check(self) -> bool:
        """
        Liveness probe bounded by the provider timeout.

        The outcome is recorded like any fetch, so a probe is how a provider
        that is down gets back into rotation.
        """
        start = time.perf_counter()
        try:
            alive = await asyncio.wait_for(self._health_check(), timeout=self._config.timeout_s)
        except Exception as exc:
            reason = _describe_failure(exc, self._config.timeout_s)
            self._health.record_failure(reason)
            logger.warning("provider_health_check_failed", provider=self.id, error=reason)
            return False

        if alive:
            self._health.record_success((time.perf_counter() - start) * 1000)
        else:
            self._health.record_failure("health check reported not alive")
        return bool(alive)

    async def _run_tracked(self, operation: str, call: Awaitable[T]) -> T:
        """Await a provider call under the timeout and record its outcome."""
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(call, timeout=self._config.timeout_s)
        except Exception as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            reason = _describe_failure(exc, self._config.timeout_s)
            self._health.record_failure(reason)
            logger.warning(
                "provider_fetch_failed",
                provider=self.id,
                operation=operation,
                error=reason,
                latency_ms=round(latency_ms, 2),
            )
            raise ProviderFetchError(self.id, operation, reason) from exc

        self._health.record_success((time.perf_counter() - start) * 1000)
        return result

    @abc.abstractmethod
    async def _health_check(self) -> bool:
        """Provider-specific liveness probe."""
        ...


class LiveScoreProvider(BaseProvider):
    """Provider of live match scores."""

    async def fetch_live_scores(self, query: LiveScoreQuery) -> list[LiveScore]:
        return await self._run_tracked("fetch_live_scores", self._fetch_live_scores(query))

    async def fetch_match_score(self, match_id: str) -> Optional[LiveScore]:
        return await self._run_tracked("fetch_match_score", self._fetch_match_score(match_id))

    @abc.abstractmethod
    async def _fetch_live_scores(self, query: LiveScoreQuery) -> list[LiveScore]:
        ...

    @abc.abstractmethod
    async def _fetch_match_score(self, match_id: str) -> Optional[LiveScore]:
        ...


class MarketProvider(BaseProvider):
    """Provider of betting-market odds."""

    async def fetch_markets(self, query: MarketQuery) -> list[Market]:
        return await self._run_tracked("fetch_markets", self._fetch_markets(query))

    async def fetch_event_markets(self, event_id: str) -> list[Market]:
        return await self._run_tracked("fetch_event_markets", self._fetch_event_markets(event_id))

    @abc.abstractmethod
    async def _fetch_markets(self, query: MarketQuery) -> list[Market]:
        ...

    async def _fetch_event_markets(self, event_id: str) -> list[Market]:
        return await self._fetch_markets(MarketQuery(event_ids=[event_id]))
