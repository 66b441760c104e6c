"""Data models for the resilient fetch layer."""

from dataclasses import dataclass
from typing import Annotated

import httpx
from pydantic import BaseModel, ConfigDict, Field

from resilient_fetch.features.fetch.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_EXPONENTIAL_BASE,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    MAX_RATE_LIMIT_WAIT_MS,
)
from resilient_fetch.features.fetch.errors import FetchFailureError


class RequestOptions(BaseModel):
    """Transport options for a request.

    Opaque to the retry and fallback logic; handed to the transport as-is.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: Annotated[str, Field(min_length=1)] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)
    content: bytes | None = None


class FetchRequest(BaseModel):
    """A single logical request: URL, transport options and retry budget."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    options: RequestOptions = Field(default_factory=RequestOptions)
    max_retries: Annotated[int, Field(ge=1)] = DEFAULT_MAX_RETRIES


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Strict exponential backoff without jitter:
    delay = min(base_delay_ms * exponential_base ** attempt, max_delay_ms)

    Timing bounds of one ``fetch_with_retry`` call:
    - a single rate-limit wait is always shorter than max_rate_limit_wait_ms
    - total backoff never exceeds ``max_total_backoff_ms()``
    - rate-limit waits are not counted, so their number is unbounded
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=1)] = DEFAULT_MAX_RETRIES
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = DEFAULT_MAX_DELAY_MS
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = (
        DEFAULT_EXPONENTIAL_BASE
    )
    max_rate_limit_wait_ms: Annotated[int, Field(ge=0, le=300000)] = (
        MAX_RATE_LIMIT_WAIT_MS
    )

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the attempt following ``attempt``.

        Args:
            attempt: Attempt index that just failed (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        return int(min(delay, self.max_delay_ms))

    def max_total_backoff_ms(self) -> int:
        """Upper bound on backoff added by one call.

        No delay follows the final attempt, so only the first
        ``max_retries - 1`` delays can ever be taken.

        Returns:
            Sum of all possible backoff delays in milliseconds.
        """
        return sum(self.get_delay_ms(i) for i in range(self.max_retries - 1))

    def is_last_attempt(self, attempt: int) -> bool:
        """Check whether ``attempt`` is the final slot of the budget."""
        return attempt >= self.max_retries - 1


def is_ok(response: httpx.Response) -> bool:
    """Success flag: status in the 2xx/3xx range."""
    return HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX


# Attempt outcomes: exactly one is produced per transport call.


@dataclass(frozen=True)
class Success:
    """A response that ends the retry loop."""

    response: httpx.Response


@dataclass(frozen=True)
class RateLimited:
    """Quota exhausted with a reset close enough to wait for."""

    reset_timestamp: int
    wait_ms: int


@dataclass(frozen=True)
class RetryableFailure:
    """Failure that may be retried after backoff if budget remains."""

    cause: FetchFailureError


@dataclass(frozen=True)
class TerminalFailure:
    """Failure that ends the call immediately."""

    cause: FetchFailureError


AttemptOutcome = Success | RateLimited | RetryableFailure | TerminalFailure


@dataclass
class RetryState:
    """Bookkeeping for one ``fetch_with_retry`` call.

    Attributes:
        attempt: Current attempt index (0-indexed).
        requests_sent: Transport calls made, including rate-limit repeats.
        backoff_ms_total: Backoff delay waited so far.
        rate_limit_waits: Number of rate-limit cooldowns waited out.
        rate_limit_ms_total: Rate-limit delay waited so far.
    """

    attempt: int = 0
    requests_sent: int = 0
    backoff_ms_total: int = 0
    rate_limit_waits: int = 0
    rate_limit_ms_total: int = 0

    @property
    def waited_ms_total(self) -> int:
        """Total time spent suspended in backoff and rate-limit waits."""
        return self.backoff_ms_total + self.rate_limit_ms_total
