"""Resilient HTTP fetch layer.

This module provides:
- Bounded retries with exponential backoff (1s doubling, capped at 10s)
- Waiting out short rate-limit cooldowns (403 + X-RateLimit-Remaining: 0)
- Proxy fallback for allow-listed origins when direct access fails
- Header and URL redaction for logging
- Metrics collection for observability
"""

from resilient_fetch.features.fetch.client import ResilientFetcher
from resilient_fetch.features.fetch.config import FetchConfig
from resilient_fetch.features.fetch.constants import (
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROXY_TEMPLATES,
    MAX_RATE_LIMIT_WAIT_MS,
)
from resilient_fetch.features.fetch.errors import (
    AllProxiesFailedError,
    DisallowedOriginError,
    FetchErrorClass,
    FetchFailureError,
    HTTPStatusError,
    MalformedURLError,
    RateLimitedError,
    TransportFailureError,
)
from resilient_fetch.features.fetch.fallback import (
    build_proxy_url,
    encode_uri_component,
    fetch_with_fallback,
)
from resilient_fetch.features.fetch.metrics import FetchMetrics
from resilient_fetch.features.fetch.models import (
    FetchRequest,
    RequestOptions,
    RetryPolicy,
    is_ok,
)
from resilient_fetch.features.fetch.origin_guard import is_allowed, parse_hostname
from resilient_fetch.features.fetch.redact import redact_headers, redact_url_credentials
from resilient_fetch.features.fetch.retry import fetch_with_retry, run_with_retry
from resilient_fetch.features.fetch.transport import HttpxTransport, Transport


__all__ = [
    # Entry points
    "ResilientFetcher",
    "fetch_with_retry",
    "run_with_retry",
    "fetch_with_fallback",
    "is_allowed",
    "parse_hostname",
    # Transport
    "Transport",
    "HttpxTransport",
    # Config
    "FetchConfig",
    "RetryPolicy",
    # Models
    "FetchRequest",
    "RequestOptions",
    "is_ok",
    # Errors
    "FetchErrorClass",
    "FetchFailureError",
    "TransportFailureError",
    "MalformedURLError",
    "HTTPStatusError",
    "RateLimitedError",
    "DisallowedOriginError",
    "AllProxiesFailedError",
    # Constants
    "DEFAULT_ALLOWED_HOSTS",
    "DEFAULT_PROXY_TEMPLATES",
    "DEFAULT_MAX_RETRIES",
    "MAX_RATE_LIMIT_WAIT_MS",
    # Helpers
    "build_proxy_url",
    "encode_uri_component",
    "redact_headers",
    "redact_url_credentials",
    # Metrics
    "FetchMetrics",
]
