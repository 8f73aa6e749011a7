"""
Scheduler service for Live Feed.
Owns named polling tasks and drives them from a single fixed-cadence tick.

Each task is a fetch -> aggregate -> deliver pipeline bound to a set of
providers. On every tick, due tasks that are not already running are spawned
as independent asyncio tasks, so a slow task never delays the tick or any
other task. The running flag is checked and set synchronously inside the tick,
which makes it atomic on the event loop: a task never overlaps itself.
"""
from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional, Sequence

from shared.config import Settings, get_settings
from shared.models.domain import (
    LiveScoreQuery,
    MarketQuery,
    PollingConfig,
    PollingConfigUpdate,
    ProviderHealth,
    TaskStatus,
)
from shared.models.enums import ProviderStatus, TaskKind
from shared.models.results import FanOutResult, ProviderFailure, ProviderReadings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import (
    POLL_DURATION,
    POLL_EXECUTIONS,
    SCHEDULER_ACTIVE_TASKS,
    atrack_latency,
    start_metrics_server,
)

from aggregator.engine import DataAggregator
from ingest.providers.base import (
    BaseProvider,
    LiveScoreProvider,
    MarketProvider,
    ProviderFetchError,
)
from ingest.providers.registry import ProviderRegistry, build_provider_registry
from scheduler.engine.polling import IntervalResolver, load_polling_config

logger = get_logger(__name__)

DeliveryCallback = Callable[[list[Any]], Awaitable[None]]


class PollingTask:
    """A registered fetch-aggregate-deliver pipeline and its schedule."""

    def __init__(
        self,
        task_id: str,
        kind: TaskKind,
        providers: Sequence[BaseProvider],
        params: LiveScoreQuery | MarketQuery,
        callback: DeliveryCallback,
        interval_ms: int,
        next_run_at: float,
    ) -> None:
        self.task_id = task_id
        self.kind = kind
        self.providers = list(providers)
        self.params = params
        self.callback = callback
        self.interval_ms = interval_ms
        self.next_run_at = next_run_at  # monotonic seconds
        self.last_run: Optional[datetime] = None
        self.running = False
        self.execution: Optional[asyncio.Task[None]] = None
        self.executions = 0
        self.last_failures: tuple[str, ...] = ()

    def is_due(self, now: float) -> bool:
        return not self.running and now >= self.next_run_at


class PollingScheduler:
    """
    Single-process polling scheduler.

    Tasks move Idle -> Running -> Idle. Failures never leave a task stuck:
    whatever happens inside an execution, the task returns to Idle and is
    rescheduled at ``now + interval`` unless it was unregistered meanwhile.
    """

    def __init__(
        self,
        polling_config: PollingConfig,
        aggregator: DataAggregator | None = None,
        settings: Settings | None = None,
        registry: ProviderRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._resolver = IntervalResolver(polling_config)
        self._aggregator = aggregator or DataAggregator()
        self._registry = registry
        self._clock = clock
        self._tick_interval_s = self._settings.scheduler_tick_interval_s
        self._probe_interval_s = self._settings.provider_probe_interval_s
        self._tasks: dict[str, PollingTask] = {}
        self._inflight: set[asyncio.Task[None]] = set()
        self._probe_task: Optional[asyncio.Task[None]] = None
        self._last_probe_at: Optional[float] = None
        self._loop_task: Optional[asyncio.Task[None]] = None

    # ── Registration ────────────────────────────────────────────────────

    def register_live_score_task(
        self,
        task_id: str,
        providers: Sequence[LiveScoreProvider],
        params: LiveScoreQuery,
        callback: DeliveryCallback,
    ) -> None:
        self._register(task_id, TaskKind.LIVE_SCORES, providers, params, callback)

    def register_market_task(
        self,
        task_id: str,
        providers: Sequence[MarketProvider],
        params: MarketQuery,
        callback: DeliveryCallback,
    ) -> None:
        self._register(task_id, TaskKind.MARKETS, providers, params, callback)

    def _register(
        self,
        task_id: str,
        kind: TaskKind,
        providers: Sequence[BaseProvider],
        params: LiveScoreQuery | MarketQuery,
        callback: DeliveryCallback,
    ) -> None:
        interval_ms = self._resolver.resolve(params)
        task = PollingTask(
            task_id=task_id,
            kind=kind,
            providers=providers,
            params=params,
            callback=callback,
            interval_ms=interval_ms,
            next_run_at=self._clock() + interval_ms / 1000,
        )
        previous = self._tasks.get(task_id)
        if previous is not None:
            logger.warning("poll_task_replaced", task_id=task_id, in_flight=previous.running)
            if previous.running and previous.execution is not None:
                # The id stays busy until the replaced run finishes
                task.running = True
                task.execution = previous.execution
                previous.execution.add_done_callback(lambda _: self._release(task))
        self._tasks[task_id] = task
        SCHEDULER_ACTIVE_TASKS.set(len(self._tasks))
        logger.info(
            "poll_task_registered",
            task_id=task_id,
            kind=kind.value,
            providers=[p.id for p in task.providers],
            interval_ms=interval_ms,
        )

    @staticmethod
    def _release(task: PollingTask) -> None:
        task.running = False
        task.execution = None

    def update_interval(self, task_id: str, interval_ms: int) -> bool:
        """
        Change a task's interval and reschedule it from now.

        No floor is applied here; callers must reject values below
        MIN_INTERVAL_MS. An execution already in flight is unaffected.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning("poll_task_unknown", task_id=task_id, op="update_interval")
            return False
        old = task.interval_ms
        task.interval_ms = interval_ms
        task.next_run_at = self._clock() + interval_ms / 1000
        logger.info("poll_interval_updated", task_id=task_id, old_ms=old, new_ms=interval_ms)
        return True

    def unregister(self, task_id: str) -> bool:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        SCHEDULER_ACTIVE_TASKS.set(len(self._tasks))
        logger.info("poll_task_removed", task_id=task_id, in_flight=task.running)
        return True

    def replace_config(self, config: PollingConfig) -> None:
        """Swap the interval table; applies to tasks registered afterwards."""
        self._resolver.replace(config)

    def merge_config(self, updates: PollingConfigUpdate) -> PollingConfig:
        return self._resolver.merge(updates)

    @property
    def polling_config(self) -> PollingConfig:
        return self._resolver.config

    # ── Lifecycle ───────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the tick loop on the running event loop. No-op if already started."""
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "polling_scheduler_started",
            tasks=len(self._tasks),
            tick_interval_s=self._tick_interval_s,
        )

    async def stop(self) -> None:
        """Stop ticking and wait for in-flight executions. No-op if already stopped."""
        loop_task, self._loop_task = self._loop_task, None
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
            logger.info("polling_scheduler_stopped", in_flight=len(self._inflight))
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception as exc:
                logger.error("scheduler_loop_error", error=str(exc), exc_info=True)
            await asyncio.sleep(self._tick_interval_s)

    def tick(self, now: float | None = None) -> list[str]:
        """
        Scan all tasks once and spawn the ones that are due.

        Never awaits; returns the ids of the tasks fired.
        """
        now = self._clock() if now is None else now
        fired: list[str] = []
        for task in list(self._tasks.values()):
            if not task.is_due(now):
                continue
            task.running = True
            task.execution = self._spawn(self._execute(task))
            fired.append(task.task_id)
            logger.debug("poll_task_fired", task_id=task.task_id)

        self._maybe_probe(now)
        return fired

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        handle = asyncio.get_running_loop().create_task(coro)
        self._inflight.add(handle)
        handle.add_done_callback(self._inflight.discard)
        return handle

    # ── Execution ───────────────────────────────────────────────────────

    async def _execute(self, task: PollingTask) -> None:
        task.running = True
        task.last_run = datetime.now(timezone.utc)
        outcome = "ok"
        failures: tuple[str, ...] = ()
        async with atrack_latency(POLL_DURATION, kind=task.kind.value):
            try:
                result = await self._fan_out(task)
                failures = result.failed_ids
                aggregated = self._merge(task.kind, result.successes)
                delivered = await self._deliver(task, aggregated)
                if not delivered:
                    outcome = "delivery_failed"
                elif result.failures:
                    outcome = "partial"
                logger.info(
                    "poll_task_completed",
                    task_id=task.task_id,
                    providers_ok=len(result.successes),
                    providers_failed=len(result.failures),
                    providers_skipped=len(result.skipped),
                    readings=result.reading_count,
                    aggregated=len(aggregated),
                )
            except Exception as exc:
                outcome = "error"
                logger.error("poll_task_error", task_id=task.task_id, error=str(exc), exc_info=True)
            finally:
                task.running = False
                task.execution = None
                task.executions += 1
                task.last_failures = failures
                POLL_EXECUTIONS.labels(kind=task.kind.value, outcome=outcome).inc()
                if self._tasks.get(task.task_id) is task:
                    task.next_run_at = self._clock() + task.interval_ms / 1000
                else:
                    logger.info("poll_task_retired", task_id=task.task_id)

    async def _fan_out(self, task: PollingTask) -> FanOutResult[Any]:
        """
        Fetch from every enabled, not-down provider of the task in parallel.

        Successes come back ordered by provider priority, then bind order.
        That order decides which reading seeds each aggregate group, and so
        which provider keeps the identity fields and wins equal-timestamp
        and equal-odds ties.
        """
        result: FanOutResult[Any] = FanOutResult()
        active: list[BaseProvider] = []
        for provider in task.providers:
            if not provider.enabled or provider.get_health().status == ProviderStatus.DOWN:
                result.skipped.append(provider.id)
            else:
                active.append(provider)
        if result.skipped:
            logger.info("providers_skipped", task_id=task.task_id, providers=result.skipped)

        active.sort(key=lambda p: p.priority)
        outcomes = await asyncio.gather(*(self._fetch_one(task, p) for p in active))
        for outcome in outcomes:
            if isinstance(outcome, ProviderFailure):
                result.failures.append(outcome)
            else:
                result.successes.append(outcome)
        return result

    async def _fetch_one(
        self, task: PollingTask, provider: BaseProvider
    ) -> ProviderReadings[Any] | ProviderFailure:
        try:
            if task.kind == TaskKind.LIVE_SCORES:
                readings = await provider.fetch_live_scores(task.params)  # type: ignore[attr-defined]
            else:
                readings = await provider.fetch_markets(task.params)  # type: ignore[attr-defined]
        except ProviderFetchError as exc:
            return ProviderFailure(provider_id=provider.id, reason=exc.reason)
        except Exception as exc:
            logger.warning(
                "provider_fetch_unexpected_error",
                task_id=task.task_id,
                provider=provider.id,
                error=str(exc),
            )
            return ProviderFailure(provider_id=provider.id, reason=f"{type(exc).__name__}: {exc}")
        return ProviderReadings(provider_id=provider.id, readings=readings)

    def _merge(self, kind: TaskKind, batches: list[ProviderReadings[Any]]) -> list[Any]:
        if kind == TaskKind.LIVE_SCORES:
            return self._aggregator.aggregate_live_scores(batches)
        return self._aggregator.aggregate_markets(batches)

    async def _deliver(self, task: PollingTask, aggregated: list[Any]) -> bool:
        try:
            await task.callback(aggregated)
        except Exception as exc:
            logger.error(
                "delivery_callback_error",
                task_id=task.task_id,
                items=len(aggregated),
                error=str(exc),
                exc_info=True,
            )
            return False
        return True

    # ── Provider recovery ───────────────────────────────────────────────

    def _bound_registry(self) -> ProviderRegistry:
        """Registry view over the configured registry plus every task's providers."""
        seen: dict[str, BaseProvider] = {}
        if self._registry is not None:
            for provider in self._registry:
                seen.setdefault(provider.id, provider)
        for task in self._tasks.values():
            for provider in task.providers:
                seen.setdefault(provider.id, provider)
        return ProviderRegistry(seen.values())

    def _maybe_probe(self, now: float) -> None:
        if self._last_probe_at is not None and now - self._last_probe_at < self._probe_interval_s:
            return
        self._last_probe_at = now
        if self._probe_task is not None and not self._probe_task.done():
            return
        registry = self._bound_registry()
        if any(p.status == ProviderStatus.DOWN for p in registry):
            self._probe_task = self._spawn(self._probe_down(registry))

    async def _probe_down(self, registry: ProviderRegistry) -> None:
        try:
            await registry.probe_down()
        except Exception as exc:
            logger.warning("provider_probe_error", error=str(exc), exc_info=True)

    # ── Introspection ───────────────────────────────────────────────────

    def get_status(self) -> list[TaskStatus]:
        now = self._clock()
        wall_now = datetime.now(timezone.utc)
        return [
            TaskStatus(
                id=task.task_id,
                kind=task.kind,
                interval_ms=task.interval_ms,
                last_run=task.last_run,
                next_run=wall_now + timedelta(seconds=task.next_run_at - now),
                running=task.running,
                executions=task.executions,
                last_failures=task.last_failures,
            )
            for task in self._tasks.values()
        ]

    def get_provider_health(self) -> dict[str, ProviderHealth]:
        return self._bound_registry().health()


# ── Service entrypoint ──────────────────────────────────────────────────


def logging_sink(task_id: str) -> DeliveryCallback:
    """Delivery callback that only logs what would be published downstream."""

    async def deliver(items: list[Any]) -> None:
        low = [i for i in items if getattr(i, "confidence", 1.0) < 0.5]
        logger.info(
            "aggregated_delivered",
            task_id=task_id,
            items=len(items),
            low_confidence=len(low),
        )

    return deliver


def register_default_tasks(scheduler: PollingScheduler, registry: ProviderRegistry) -> None:
    scores = registry.live_score_providers
    markets = registry.market_providers
    scheduler.register_live_score_task(
        "football-live-scores",
        scores,
        LiveScoreQuery(sport="football"),
        logging_sink("football-live-scores"),
    )
    scheduler.register_market_task(
        "nba-markets",
        markets,
        MarketQuery(sport="basketball", league="nba"),
        logging_sink("nba-markets"),
    )
    scheduler.register_market_task(
        "nfl-markets",
        markets,
        MarketQuery(sport="football", league="nfl"),
        logging_sink("nfl-markets"),
    )


async def main() -> None:
    """Scheduler service entrypoint."""
    settings = get_settings()
    setup_logging("scheduler", settings)
    start_metrics_server()

    registry = build_provider_registry(settings)
    await registry.start_all()

    scheduler = PollingScheduler(load_polling_config(settings), settings=settings, registry=registry)
    register_default_tasks(scheduler, registry)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (ValueError, OSError, RuntimeError, NotImplementedError) as exc:
            logger.warning("signal_handler_unavailable", signal=sig, error=str(exc))

    scheduler.start()
    logger.info("scheduler_service_started", providers=len(registry))

    try:
        await shutdown.wait()
    finally:
        await scheduler.stop()
        await registry.close_all()
        logger.info("scheduler_service_stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
