"""
Prometheus metrics for the Live Feed scheduler, providers and aggregator.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "lf_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "status"],
)
POLL_EXECUTIONS = Counter(
    "lf_poll_executions_total",
    "Completed polling task executions",
    ["kind", "outcome"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "lf_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
POLL_DURATION = Histogram(
    "lf_poll_duration_seconds",
    "Wall time of one fetch-aggregate-deliver execution",
    ["kind"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
AGGREGATION_CONFIDENCE = Histogram(
    "lf_aggregation_confidence",
    "Confidence of aggregated readings",
    ["kind"],
    buckets=(0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
PROVIDER_STATUS = Gauge(
    "lf_provider_status",
    "Provider status (0 healthy, 1 degraded, 2 down)",
    ["provider"],
)
SCHEDULER_ACTIVE_TASKS = Gauge(
    "lf_scheduler_active_tasks",
    "Number of registered polling tasks",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
