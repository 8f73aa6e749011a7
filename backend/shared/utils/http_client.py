"""
Async HTTP client wrapper for provider requests.
Includes timeout management, optional retries, and metrics collection.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import httpx

from shared.models.domain import ProviderConfig
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)


class ProviderHTTPClient:
    """
    Async JSON client for one upstream provider.

    The credential is sent as a Bearer token. Client errors (4xx) are never
    retried; timeouts, 429 and 5xx are retried up to ``max_retries`` attempts.
    """

    def __init__(
        self,
        provider_id: str,
        base_url: str,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        max_retries: int = 1,
        retry_delay_s: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider = provider_id
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s
        self._max_retries = max(1, max_retries)
        self._retry_delay_s = retry_delay_s
        self._transport = transport
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(
        cls, config: ProviderConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> "ProviderHTTPClient":
        return cls(
            provider_id=config.id,
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_s=config.timeout_s,
            max_retries=config.max_retries,
            retry_delay_s=config.retry_delay_s,
            transport=transport,
        )

    @property
    def started(self) -> bool:
        return self._client is not None

    async def start(self) -> httpx.AsyncClient:
        """Initialize the underlying httpx client and return it."""
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout, connect=min(5.0, self._timeout)),
            follow_redirects=True,
            transport=self._transport,
        )
        return self._client

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        Perform a GET request and decode the JSON body.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses once attempts are exhausted.
            httpx.TimeoutException: If the last attempt timed out.
        """
        client = self._client or await self.start()

        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            start_time = time.perf_counter()
            status = "error"
            try:
                resp = await client.get(path, params=params)
                status = str(resp.status_code)
                resp.raise_for_status()
                logger.debug(
                    "provider_request_success",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp.json()
            except httpx.TimeoutException as exc:
                status = "timeout"
                last_exc = exc
                logger.warning("provider_timeout", provider=self._provider, path=path, attempt=attempt)
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                code = exc.response.status_code
                logger.warning(
                    "provider_http_error",
                    provider=self._provider,
                    path=path,
                    status=code,
                    attempt=attempt,
                )
                if 400 <= code < 500 and code != 429:
                    raise
            finally:
                PROVIDER_REQUESTS.labels(provider=self._provider, status=status).inc()
                PROVIDER_LATENCY.labels(provider=self._provider).observe(
                    time.perf_counter() - start_time
                )

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay_s * attempt)

        if last_exc:
            raise last_exc
        raise RuntimeError(f"Provider request failed after {self._max_retries} attempts")
