"""Retry loop with exponential backoff and rate-limit cooldowns."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
import structlog

from resilient_fetch.features.fetch.constants import (
    HTTP_STATUS_FORBIDDEN,
    RATE_LIMIT_EXHAUSTED_VALUE,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
)
from resilient_fetch.features.fetch.errors import (
    HTTPStatusError,
    RateLimitedError,
    TransportFailureError,
)
from resilient_fetch.features.fetch.metrics import FetchMetrics
from resilient_fetch.features.fetch.models import (
    AttemptOutcome,
    FetchRequest,
    RateLimited,
    RequestOptions,
    RetryableFailure,
    RetryPolicy,
    RetryState,
    Success,
    TerminalFailure,
    is_ok,
)
from resilient_fetch.features.fetch.redact import redact_headers, redact_url_credentials
from resilient_fetch.features.fetch.transport import Transport


logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


def parse_reset_timestamp(value: str | None) -> int | None:
    """Parse a rate-limit reset header (Unix seconds).

    Args:
        value: Raw header value.

    Returns:
        Whole seconds, or None if missing or not numeric.
    """
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except (ValueError, OverflowError):
        return None


def classify_response(
    response: httpx.Response,
    request: FetchRequest,
    attempt: int,
    policy: RetryPolicy,
    now_ms: int,
) -> AttemptOutcome:
    """Turn a received response into the outcome of one attempt.

    Args:
        response: Response returned by the transport.
        request: The request that produced it.
        attempt: Attempt index (0-indexed).
        policy: Active retry policy.
        now_ms: Current wall-clock time in Unix milliseconds.

    Returns:
        RateLimited or TerminalFailure for an exhausted quota,
        RetryableFailure for a non-ok status with budget left,
        Success otherwise.
    """
    headers = response.headers
    if (
        response.status_code == HTTP_STATUS_FORBIDDEN
        and headers.get(RATE_LIMIT_REMAINING_HEADER) == RATE_LIMIT_EXHAUSTED_VALUE
    ):
        reset_timestamp = parse_reset_timestamp(headers.get(RATE_LIMIT_RESET_HEADER))
        if reset_timestamp is not None:
            wait_ms = reset_timestamp * 1000 - now_ms
            if 0 < wait_ms < policy.max_rate_limit_wait_ms:
                return RateLimited(reset_timestamp=reset_timestamp, wait_ms=wait_ms)
        return TerminalFailure(RateLimitedError(reset_timestamp, request.url))

    if not is_ok(response) and not policy.is_last_attempt(attempt):
        return RetryableFailure(HTTPStatusError(response.status_code, request.url))

    # A non-ok response on the final attempt is handed back, not raised
    return Success(response)


async def attempt_once(
    transport: Transport,
    request: FetchRequest,
    attempt: int,
    policy: RetryPolicy,
    clock: Clock,
    metrics: FetchMetrics,
) -> AttemptOutcome:
    """Send the request once and classify what happened."""
    metrics.record_attempt()
    try:
        response = await transport.send(request)
    except TransportFailureError as e:
        return RetryableFailure(e)

    metrics.record_response(response.status_code)
    return classify_response(
        response, request, attempt, policy, now_ms=round(clock() * 1000)
    )


async def run_with_retry(
    request: FetchRequest,
    *,
    transport: Transport,
    policy: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.time,
    metrics: FetchMetrics | None = None,
) -> httpx.Response:
    """Execute a request descriptor under the retry policy.

    The descriptor's ``max_retries`` overrides the policy's budget.
    Attempts are sequential; every wait is an ``await`` on ``sleep``.

    Args:
        request: URL, options and retry budget.
        transport: Sends one request per call.
        policy: Backoff settings (defaults to RetryPolicy()).
        sleep: Suspends for the given number of seconds.
        clock: Returns the current Unix time in seconds.
        metrics: Counters to update (defaults to the shared instance).

    Returns:
        The first ok response, or the final response if every attempt
        came back non-ok.

    Raises:
        TransportFailureError: If the last attempt failed at the network layer.
        RateLimitedError: If the quota reset is not within the wait window.
    """
    policy = policy or RetryPolicy()
    if policy.max_retries != request.max_retries:
        policy = RetryPolicy.model_validate(
            {**policy.model_dump(), "max_retries": request.max_retries}
        )
    metrics = metrics or FetchMetrics.get_instance()

    state = RetryState()
    log = logger.bind(
        component="fetch",
        url=redact_url_credentials(request.url),
        method=request.options.method,
        max_retries=policy.max_retries,
    )
    log.debug("fetch_start", headers=redact_headers(request.options.headers))

    while True:
        state.requests_sent += 1
        outcome = await attempt_once(
            transport, request, state.attempt, policy, clock, metrics
        )

        if isinstance(outcome, Success):
            log.info(
                "fetch_complete",
                status_code=outcome.response.status_code,
                attempt=state.attempt,
                requests_sent=state.requests_sent,
                waited_ms=state.waited_ms_total,
            )
            return outcome.response

        if isinstance(outcome, RateLimited):
            # Same attempt slot is retried after the cooldown
            log.info(
                "rate_limited_wait",
                attempt=state.attempt,
                wait_ms=outcome.wait_ms,
                reset_timestamp=outcome.reset_timestamp,
            )
            metrics.record_rate_limit_wait(outcome.wait_ms)
            state.rate_limit_waits += 1
            state.rate_limit_ms_total += outcome.wait_ms
            await sleep(outcome.wait_ms / 1000)
            continue

        if isinstance(outcome, TerminalFailure):
            log.warning("fetch_failed", attempt=state.attempt, **outcome.cause.to_dict())
            metrics.record_failure(outcome.cause.error_class)
            raise outcome.cause

        if policy.is_last_attempt(state.attempt):
            log.warning(
                "fetch_exhausted",
                attempt=state.attempt,
                waited_ms=state.waited_ms_total,
                **outcome.cause.to_dict(),
            )
            metrics.record_failure(outcome.cause.error_class)
            raise outcome.cause

        delay_ms = policy.get_delay_ms(state.attempt)
        log.info(
            "retry_scheduled",
            attempt=state.attempt,
            next_attempt=state.attempt + 1,
            delay_ms=delay_ms,
            error_class=outcome.cause.error_class.value,
        )
        metrics.record_retry(delay_ms)
        state.backoff_ms_total += delay_ms
        await sleep(delay_ms / 1000)
        state.attempt += 1


async def fetch_with_retry(
    url: str,
    options: RequestOptions | Mapping[str, Any] | None = None,
    max_retries: int | None = None,
    *,
    transport: Transport,
    policy: RetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.time,
    metrics: FetchMetrics | None = None,
) -> httpx.Response:
    """Fetch a URL, retrying transient failures with exponential backoff.

    Args:
        url: Absolute URL to request.
        options: Transport options (method, headers, params, content).
        max_retries: Attempt budget; defaults to the policy's (3).
        transport: Sends one request per call.
        policy: Backoff settings.
        sleep: Suspends for the given number of seconds.
        clock: Returns the current Unix time in seconds.
        metrics: Counters to update.

    Returns:
        The response; see ``run_with_retry``.

    Raises:
        ValueError: If ``max_retries`` or ``options`` are invalid.
        TransportFailureError: If every attempt failed at the network layer.
        RateLimitedError: If the quota reset is not within the wait window.
    """
    if options is None:
        options = RequestOptions()
    elif not isinstance(options, RequestOptions):
        options = RequestOptions.model_validate(dict(options))

    if max_retries is None:
        max_retries = (policy or RetryPolicy()).max_retries
    request = FetchRequest(url=url, options=options, max_retries=max_retries)
    return await run_with_retry(
        request,
        transport=transport,
        policy=policy,
        sleep=sleep,
        clock=clock,
        metrics=metrics,
    )
