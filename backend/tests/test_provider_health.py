"""
Unit tests for provider health tracking and the provider base class.
"""
from __future__ import annotations

import pydantic
import pytest

from shared.models.domain import LiveScoreQuery
from shared.models.enums import ProviderStatus
from ingest.providers.base import ProviderFetchError
from ingest.providers.health import ProviderHealthTracker, status_for_failures
from ingest.providers.registry import ProviderRegistry

from conftest import StubScoresProvider, force_down, make_score


# ── Status ladder ───────────────────────────────────────────────────────

class TestHealthLadder:

    def test_no_failures_is_healthy(self) -> None:
        tracker = ProviderHealthTracker("p1")
        health = tracker.snapshot()
        assert health.status == ProviderStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.error_rate == 0.0

    def test_one_failure_is_still_healthy(self) -> None:
        tracker = ProviderHealthTracker("p1")
        tracker.record_failure("boom")
        assert tracker.status == ProviderStatus.HEALTHY

    def test_two_failures_degrade(self) -> None:
        tracker = ProviderHealthTracker("p1")
        tracker.record_failure("boom")
        tracker.record_failure("boom")
        health = tracker.snapshot()
        assert health.status == ProviderStatus.DEGRADED
        assert health.error_rate == pytest.approx(0.2)

    def test_four_failures_go_down(self) -> None:
        tracker = ProviderHealthTracker("p1")
        for _ in range(4):
            tracker.record_failure("boom")
        assert tracker.status == ProviderStatus.DOWN
        assert tracker.snapshot().last_error == "boom"

    def test_error_rate_caps_at_one(self) -> None:
        tracker = ProviderHealthTracker("p1")
        for _ in range(15):
            tracker.record_failure("boom")
        assert tracker.snapshot().error_rate == 1.0

    def test_success_resets_streak_and_restores_healthy(self) -> None:
        tracker = ProviderHealthTracker("p1")
        for _ in range(4):
            tracker.record_failure("boom")
        tracker.record_success(120.0)
        health = tracker.snapshot()
        assert health.status == ProviderStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.error_rate == 0.0
        assert health.last_success is not None
        assert health.total_failures == 4
        assert health.total_successes == 1

    def test_status_for_failures_thresholds(self) -> None:
        assert [status_for_failures(n) for n in range(6)] == [
            ProviderStatus.HEALTHY,
            ProviderStatus.HEALTHY,
            ProviderStatus.DEGRADED,
            ProviderStatus.DEGRADED,
            ProviderStatus.DOWN,
            ProviderStatus.DOWN,
        ]


def test_response_time_window_drops_oldest() -> None:
    tracker = ProviderHealthTracker("p1", window_size=3)
    for ms in (1000.0, 100.0, 200.0, 300.0):
        tracker.record_success(ms)
    assert tracker.snapshot().average_response_time_ms == pytest.approx(200.0)


def test_snapshot_is_frozen_copy() -> None:
    tracker = ProviderHealthTracker("p1")
    snapshot = tracker.snapshot()
    with pytest.raises(pydantic.ValidationError):
        snapshot.consecutive_failures = 99  # type: ignore[misc]
    tracker.record_failure("boom")
    assert snapshot.consecutive_failures == 0
    assert tracker.snapshot().consecutive_failures == 1


# ── BaseProvider ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_successful_fetch_records_response_time() -> None:
    provider = StubScoresProvider("p1", [make_score("p1")])
    scores = await provider.fetch_live_scores(LiveScoreQuery(sport="football"))
    assert len(scores) == 1
    health = provider.get_health()
    assert health.total_successes == 1
    assert health.average_response_time_ms is not None


@pytest.mark.asyncio
async def test_fetch_error_is_wrapped_and_recorded() -> None:
    provider = StubScoresProvider("p1", error=ValueError("bad payload"))
    with pytest.raises(ProviderFetchError) as info:
        await provider.fetch_live_scores(LiveScoreQuery())
    assert info.value.provider_id == "p1"
    assert "bad payload" in info.value.reason
    assert provider.get_health().consecutive_failures == 1


@pytest.mark.asyncio
async def test_fetch_overrunning_timeout_is_a_failure() -> None:
    provider = StubScoresProvider("p1", [make_score("p1")], delay_s=0.5, timeout_s=0.05)
    with pytest.raises(ProviderFetchError) as info:
        await provider.fetch_live_scores(LiveScoreQuery())
    assert info.value.reason.startswith("timeout")
    assert provider.get_health().consecutive_failures == 1


@pytest.mark.asyncio
async def test_health_check_failure_and_recovery() -> None:
    provider = StubScoresProvider("p1")
    await force_down(provider)
    assert provider.get_health().status == ProviderStatus.DOWN

    provider.alive = False
    assert await provider.health_check() is False
    assert provider.get_health().consecutive_failures == 5

    provider.alive = True
    assert await provider.health_check() is True
    assert provider.get_health().status == ProviderStatus.HEALTHY


@pytest.mark.asyncio
async def test_registry_probes_only_down_providers() -> None:
    up = StubScoresProvider("up")
    down = StubScoresProvider("down")
    await force_down(down)
    registry = ProviderRegistry([up, down])

    results = await registry.probe_down()

    assert results == {"down": True}
    assert registry.health()["down"].status == ProviderStatus.HEALTHY


def test_registry_rejects_duplicate_ids() -> None:
    registry = ProviderRegistry([StubScoresProvider("p1")])
    with pytest.raises(ValueError):
        registry.add(StubScoresProvider("p1"))


def test_success_clears_degraded_status() -> None:
    tracker = ProviderHealthTracker("p1")
    tracker.record_failure("boom")
    tracker.record_failure("boom")
    assert tracker.status == ProviderStatus.DEGRADED
    tracker.record_success(50.0)
    assert tracker.status == ProviderStatus.HEALTHY
    assert tracker.snapshot().error_rate == 0.0
