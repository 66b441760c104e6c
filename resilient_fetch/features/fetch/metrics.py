"""Metrics collection for the resilient fetch layer."""

from dataclasses import dataclass, field
from typing import ClassVar

from resilient_fetch.features.fetch.errors import FetchErrorClass


@dataclass
class FetchMetrics:
    """Counters for retry, rate-limit and fallback activity.

    A process-wide instance is available through ``get_instance()``;
    callers that want isolated numbers pass their own instance.
    """

    http_responses_total: dict[int, int] = field(default_factory=dict)
    http_attempts_total: int = 0
    http_retry_total: int = 0
    http_backoff_ms_total: int = 0
    rate_limit_waits_total: int = 0
    rate_limit_wait_ms_total: int = 0
    proxy_attempts_total: int = 0
    fallback_success_total: dict[str, int] = field(default_factory=dict)
    failures_total: dict[str, int] = field(default_factory=dict)

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_attempt(self) -> None:
        """Record a transport call."""
        self.http_attempts_total += 1

    def record_response(self, status_code: int) -> None:
        """Record a received response by status code."""
        self.http_responses_total[status_code] = (
            self.http_responses_total.get(status_code, 0) + 1
        )

    def record_retry(self, delay_ms: int) -> None:
        """Record a scheduled retry and its backoff delay."""
        self.http_retry_total += 1
        self.http_backoff_ms_total += delay_ms

    def record_rate_limit_wait(self, wait_ms: int) -> None:
        """Record a rate-limit cooldown that was waited out."""
        self.rate_limit_waits_total += 1
        self.rate_limit_wait_ms_total += wait_ms

    def record_proxy_attempt(self) -> None:
        """Record a request routed through a proxy template."""
        self.proxy_attempts_total += 1

    def record_fallback_success(self, route: str) -> None:
        """Record which route ("direct" or "proxy[N]") answered."""
        self.fallback_success_total[route] = (
            self.fallback_success_total.get(route, 0) + 1
        )

    def record_failure(self, error_class: FetchErrorClass) -> None:
        """Record a failure surfaced to the caller."""
        key = error_class.value
        self.failures_total[key] = self.failures_total.get(key, 0) + 1

    def to_dict(self) -> dict[str, int | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_responses_total": dict(self.http_responses_total),
            "http_attempts_total": self.http_attempts_total,
            "http_retry_total": self.http_retry_total,
            "http_backoff_ms_total": self.http_backoff_ms_total,
            "rate_limit_waits_total": self.rate_limit_waits_total,
            "rate_limit_wait_ms_total": self.rate_limit_wait_ms_total,
            "proxy_attempts_total": self.proxy_attempts_total,
            "fallback_success_total": dict(self.fallback_success_total),
            "failures_total": dict(self.failures_total),
        }
