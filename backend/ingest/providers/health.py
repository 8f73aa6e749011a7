"""
Per-provider health tracking.

Each provider owns one tracker. Status follows the consecutive-failure ladder:

    consecutive_failures > 3  -> down
    consecutive_failures > 1  -> degraded
    otherwise                 -> healthy

and the error rate is a pure function of the current failure streak,
``min(1, consecutive_failures / 10)``, so one success clears it.
"""
from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Optional

from shared.models.domain import ProviderHealth
from shared.models.enums import ProviderStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_STATUS

logger = get_logger(__name__)

DOWN_AFTER_FAILURES = 3
DEGRADED_AFTER_FAILURES = 1
ERROR_RATE_STREAK_SCALE = 10
DEFAULT_WINDOW_SIZE = 100


def status_for_failures(consecutive_failures: int) -> ProviderStatus:
    if consecutive_failures > DOWN_AFTER_FAILURES:
        return ProviderStatus.DOWN
    if consecutive_failures > DEGRADED_AFTER_FAILURES:
        return ProviderStatus.DEGRADED
    return ProviderStatus.HEALTHY


def error_rate_for_failures(consecutive_failures: int) -> float:
    return min(1.0, consecutive_failures / ERROR_RATE_STREAK_SCALE)


class ProviderHealthTracker:
    """Mutable health record; only the owning provider should call record_*."""

    def __init__(self, provider_id: str, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        self._provider_id = provider_id
        self._response_times: deque[float] = deque(maxlen=window_size)
        self._status = ProviderStatus.HEALTHY
        self._consecutive_failures = 0
        self._error_rate = 0.0
        self._last_success: Optional[datetime] = None
        self._last_failure: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._total_successes = 0
        self._total_failures = 0
        PROVIDER_STATUS.labels(provider=provider_id).set(self._status.severity)

    @property
    def status(self) -> ProviderStatus:
        return self._status

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def average_response_time_ms(self) -> Optional[float]:
        if not self._response_times:
            return None
        return round(sum(self._response_times) / len(self._response_times), 2)

    def record_success(self, response_time_ms: float) -> None:
        self._response_times.append(response_time_ms)
        self._last_success = datetime.now(timezone.utc)
        self._consecutive_failures = 0
        self._total_successes += 1
        self._error_rate = error_rate_for_failures(self._consecutive_failures)
        self._set_status(ProviderStatus.HEALTHY)

    def record_failure(self, error: BaseException | str) -> None:
        self._last_failure = datetime.now(timezone.utc)
        self._last_error = str(error) or type(error).__name__
        self._consecutive_failures += 1
        self._total_failures += 1
        self._error_rate = error_rate_for_failures(self._consecutive_failures)
        self._set_status(status_for_failures(self._consecutive_failures))

    def snapshot(self) -> ProviderHealth:
        return ProviderHealth(
            provider_id=self._provider_id,
            status=self._status,
            last_success=self._last_success,
            last_failure=self._last_failure,
            consecutive_failures=self._consecutive_failures,
            average_response_time_ms=self.average_response_time_ms,
            error_rate=self._error_rate,
            last_error=self._last_error,
            total_successes=self._total_successes,
            total_failures=self._total_failures,
        )

    def _set_status(self, status: ProviderStatus) -> None:
        if status != self._status:
            log = logger.warning if status == ProviderStatus.DOWN else logger.info
            log(
                "provider_status_changed",
                provider=self._provider_id,
                old=self._status.value,
                new=status.value,
                consecutive_failures=self._consecutive_failures,
            )
            PROVIDER_STATUS.labels(provider=self._provider_id).set(status.severity)
        self._status = status
