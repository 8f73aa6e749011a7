"""
Fan-out result containers passed between providers, scheduler and aggregator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Sequence, TypeVar

R = TypeVar("R")


@dataclass(frozen=True)
class ProviderReadings(Generic[R]):
    """Readings returned by one provider in one fetch."""
    provider_id: str
    readings: Sequence[R]


@dataclass(frozen=True)
class ProviderFailure:
    provider_id: str
    reason: str


@dataclass
class FanOutResult(Generic[R]):
    """Outcome of fetching from every bound provider of a task."""
    successes: list[ProviderReadings[R]] = field(default_factory=list)
    failures: list[ProviderFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # down or disabled

    @property
    def failed_ids(self) -> tuple[str, ...]:
        return tuple(f.provider_id for f in self.failures)

    @property
    def reading_count(self) -> int:
        return sum(len(s.readings) for s in self.successes)
