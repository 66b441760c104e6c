"""Caller-facing fetcher bound to one FetchConfig."""

import asyncio
import time
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx

from resilient_fetch.features.fetch.config import FetchConfig
from resilient_fetch.features.fetch.fallback import fetch_with_fallback
from resilient_fetch.features.fetch.metrics import FetchMetrics
from resilient_fetch.features.fetch.models import RequestOptions
from resilient_fetch.features.fetch.retry import Clock, Sleep, fetch_with_retry
from resilient_fetch.features.fetch.transport import HttpxTransport, Transport


class ResilientFetcher:
    """Entry point for the retry and proxy-fallback operations.

    Holds only injected configuration; every call keeps its own attempt
    state, so one instance can serve concurrent calls.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: Transport | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.time,
        metrics: FetchMetrics | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Retry policy, allow-list and proxy templates.
            transport: Request sender; an HttpxTransport is built if omitted.
            sleep: Suspension primitive used for backoff and cooldowns.
            clock: Unix-seconds clock used for rate-limit resets.
            metrics: Counters to update (defaults to the shared instance).
        """
        self._config = config or FetchConfig()
        self._owned_transport: HttpxTransport | None = None
        if transport is None:
            self._owned_transport = HttpxTransport(config=self._config)
            transport = self._owned_transport
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._metrics = metrics or FetchMetrics.get_instance()

    @property
    def config(self) -> FetchConfig:
        """Active configuration."""
        return self._config

    @property
    def metrics(self) -> FetchMetrics:
        """Counters updated by this fetcher."""
        return self._metrics

    async def fetch_with_retry(
        self,
        url: str,
        options: RequestOptions | Mapping[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> httpx.Response:
        """Fetch with the configured retry policy.

        See ``resilient_fetch.features.fetch.retry.fetch_with_retry``.
        """
        return await fetch_with_retry(
            url,
            options,
            max_retries,
            transport=self._transport,
            policy=self._config.retry_policy,
            sleep=self._sleep,
            clock=self._clock,
            metrics=self._metrics,
        )

    async def fetch_with_fallback(
        self,
        url: str,
        options: RequestOptions | None = None,
    ) -> httpx.Response:
        """Fetch through the configured proxy chain.

        See ``resilient_fetch.features.fetch.fallback.fetch_with_fallback``.
        """
        return await fetch_with_fallback(
            url,
            transport=self._transport,
            allowed_hosts=self._config.allowed_hosts,
            proxy_templates=self._config.proxy_templates,
            options=options,
            metrics=self._metrics,
        )

    async def aclose(self) -> None:
        """Close the transport if this fetcher built it."""
        if self._owned_transport is not None:
            await self._owned_transport.aclose()

    async def __aenter__(self) -> "ResilientFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
