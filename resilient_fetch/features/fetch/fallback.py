"""Proxy fallback chain for allow-listed origins.

One direct attempt, then one attempt per proxy template in order. No
backoff between routes and no retry loop: this path trades retries for
bounded latency.
"""

from collections.abc import Sequence
from urllib.parse import quote

import httpx
import structlog

from resilient_fetch.features.fetch.constants import (
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_PROXY_TEMPLATES,
)
from resilient_fetch.features.fetch.errors import (
    AllProxiesFailedError,
    DisallowedOriginError,
    TransportFailureError,
)
from resilient_fetch.features.fetch.metrics import FetchMetrics
from resilient_fetch.features.fetch.models import FetchRequest, RequestOptions
from resilient_fetch.features.fetch.origin_guard import is_allowed
from resilient_fetch.features.fetch.redact import redact_url_credentials
from resilient_fetch.features.fetch.transport import Transport


logger = structlog.get_logger()

# encodeURIComponent leaves these unescaped besides ASCII letters and digits
URI_COMPONENT_SAFE = "-_.!~*'()"

DIRECT_ROUTE = "direct"


def encode_uri_component(value: str) -> str:
    """Percent-encode a string for use as a single URL component."""
    return quote(value, safe=URI_COMPONENT_SAFE)


def build_proxy_url(template: str, url: str) -> str:
    """Append the percent-encoded target URL to a proxy template."""
    return template + encode_uri_component(url)


async def fetch_with_fallback(
    url: str,
    *,
    transport: Transport,
    allowed_hosts: Sequence[str] = DEFAULT_ALLOWED_HOSTS,
    proxy_templates: Sequence[str] = DEFAULT_PROXY_TEMPLATES,
    options: RequestOptions | None = None,
    metrics: FetchMetrics | None = None,
) -> httpx.Response:
    """Fetch an allow-listed URL directly, falling back through proxies.

    Any received response ends the chain, whatever its status code; only
    transport failures move on to the next route.

    Args:
        url: Target URL; its host must be on the allow-list.
        transport: Sends one request per call.
        allowed_hosts: Hosts eligible for proxying.
        proxy_templates: Proxy URL prefixes, tried in order.
        options: Transport options for the direct request. Proxied
            requests are plain GETs so credentials never reach a proxy.
        metrics: Counters to update (defaults to the shared instance).

    Returns:
        The first response received.

    Raises:
        DisallowedOriginError: If the host is not allow-listed.
        AllProxiesFailedError: If the direct request and every proxy failed.
    """
    metrics = metrics or FetchMetrics.get_instance()
    log = logger.bind(component="fetch", url=redact_url_credentials(str(url)))

    if not is_allowed(url, allowed_hosts):
        error = DisallowedOriginError(str(url))
        log.warning("origin_rejected")
        metrics.record_failure(error.error_class)
        raise error

    metrics.record_attempt()
    try:
        response = await transport.send(
            FetchRequest(url=url, options=options or RequestOptions())
        )
    except TransportFailureError as e:
        log.info("direct_fetch_failed", error_class=e.error_class.value)
    else:
        return _complete(response, DIRECT_ROUTE, log, metrics)

    last_error: TransportFailureError | None = None
    for index, template in enumerate(proxy_templates):
        route = f"proxy[{index}]"
        metrics.record_attempt()
        metrics.record_proxy_attempt()
        try:
            response = await transport.send(
                FetchRequest(url=build_proxy_url(template, url))
            )
        except TransportFailureError as e:
            last_error = e
            log.info(
                "proxy_attempt_failed",
                route=route,
                proxy=template,
                error_class=e.error_class.value,
            )
            continue
        return _complete(response, route, log, metrics)

    error = AllProxiesFailedError(url, len(proxy_templates), last_error)
    log.warning("all_proxies_failed", attempts=len(proxy_templates))
    metrics.record_failure(error.error_class)
    raise error from last_error


def _complete(
    response: httpx.Response,
    route: str,
    log: structlog.stdlib.BoundLogger,
    metrics: FetchMetrics,
) -> httpx.Response:
    metrics.record_response(response.status_code)
    metrics.record_fallback_success(route)
    log.info("fallback_complete", route=route, status_code=response.status_code)
    return response
