"""Error types for the resilient fetch layer."""

from datetime import UTC, datetime
from enum import Enum


class FetchErrorClass(str, Enum):
    """Classification of fetch errors for metrics and retry decisions.

    - MALFORMED_URL: Input is not a parseable absolute URL
    - DISALLOWED_ORIGIN: Host is not on the proxy allow-list
    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection (DNS, refused)
    - SSL_ERROR: TLS certificate or handshake error
    - TRANSPORT_ERROR: Any other network-layer failure
    - HTTP_STATUS: Response received but not ok
    - RATE_LIMITED: 403 with exhausted rate-limit quota
    - ALL_PROXIES_FAILED: Every proxy route raised a transport failure
    """

    MALFORMED_URL = "MALFORMED_URL"
    DISALLOWED_ORIGIN = "DISALLOWED_ORIGIN"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    HTTP_STATUS = "HTTP_STATUS"
    RATE_LIMITED = "RATE_LIMITED"
    ALL_PROXIES_FAILED = "ALL_PROXIES_FAILED"


class FetchFailureError(Exception):
    """Base exception for fetch failures.

    Provides structured error information for logging and for callers
    that report failures to a user.
    """

    def __init__(
        self,
        error_class: FetchErrorClass,
        message: str,
        url: str | None = None,
    ) -> None:
        """Initialize the fetch error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            url: URL the failure relates to, if known.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.url = url

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "url": self.url,
        }


class TransportFailureError(FetchFailureError):
    """Network-layer failure: no response was received.

    Distinct from a received-but-unsuccessful HTTP response.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        error_class: FetchErrorClass = FetchErrorClass.TRANSPORT_ERROR,
    ) -> None:
        super().__init__(error_class, message, url)


class MalformedURLError(TransportFailureError):
    """URL could not be parsed as an absolute http(s) URL."""

    def __init__(self, url: str, reason: str | None = None) -> None:
        message = f"Malformed URL: {url!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, url, FetchErrorClass.MALFORMED_URL)


class HTTPStatusError(FetchFailureError):
    """Response was received but its status is not ok.

    Attributes:
        status_code: HTTP status code of the response.
    """

    def __init__(self, status_code: int, url: str | None = None) -> None:
        super().__init__(FetchErrorClass.HTTP_STATUS, f"HTTP {status_code}", url)
        self.status_code = status_code

    def to_dict(self) -> dict[str, str | int | None]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class RateLimitedError(FetchFailureError):
    """Server quota is exhausted and the reset is too far away to wait for.

    Attributes:
        reset_timestamp: Unix seconds at which the quota resets, or None
            when the server did not send a usable reset header.
    """

    def __init__(self, reset_timestamp: int | None, url: str | None = None) -> None:
        super().__init__(
            FetchErrorClass.RATE_LIMITED,
            f"Rate limited. Reset at {format_reset_time(reset_timestamp)}",
            url,
        )
        self.reset_timestamp = reset_timestamp

    def to_dict(self) -> dict[str, str | int | None]:
        data = super().to_dict()
        data["reset_timestamp"] = self.reset_timestamp
        return data


class DisallowedOriginError(FetchFailureError):
    """Target host is not on the proxy allow-list. No request was made."""

    def __init__(self, url: str) -> None:
        super().__init__(
            FetchErrorClass.DISALLOWED_ORIGIN,
            f"{url!r} is not an allow-listed domain",
            url,
        )


class AllProxiesFailedError(FetchFailureError):
    """Direct access and every proxy route failed at the transport level.

    The last proxy failure, when there was one, is chained as ``__cause__``.

    Attributes:
        attempts: Number of proxy routes tried.
    """

    def __init__(
        self,
        url: str,
        attempts: int,
        last_error: TransportFailureError | None = None,
    ) -> None:
        if last_error is None:
            message = "All proxies failed"
        else:
            message = f"All proxies failed ({attempts} tried): {last_error.message}"
        super().__init__(FetchErrorClass.ALL_PROXIES_FAILED, message, url)
        self.attempts = attempts
        self.last_error = last_error


def format_reset_time(reset_timestamp: int | None) -> str:
    """Render a rate-limit reset timestamp for messages.

    Args:
        reset_timestamp: Unix seconds, or None.

    Returns:
        ISO-8601 UTC time followed by the raw epoch seconds.
    """
    if reset_timestamp is None:
        return "unknown time"
    try:
        rendered = datetime.fromtimestamp(reset_timestamp, tz=UTC).isoformat()
    except (OverflowError, OSError, ValueError):
        return f"unknown time ({reset_timestamp})"
    return f"{rendered} ({reset_timestamp})"
