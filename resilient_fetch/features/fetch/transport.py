"""Transport interface and the httpx-backed implementation."""

import ssl
from types import TracebackType
from typing import Protocol, runtime_checkable

import httpx
import structlog

from resilient_fetch.features.fetch.config import FetchConfig
from resilient_fetch.features.fetch.errors import (
    FetchErrorClass,
    MalformedURLError,
    TransportFailureError,
)
from resilient_fetch.features.fetch.models import FetchRequest
from resilient_fetch.features.fetch.redact import redact_url_credentials


logger = structlog.get_logger()


@runtime_checkable
class Transport(Protocol):
    """Protocol for the "perform one HTTP request" capability.

    Implementations send exactly one request and never retry.
    """

    async def send(self, request: FetchRequest) -> httpx.Response:
        """Send one request.

        Args:
            request: URL and transport options.

        Returns:
            The received response, whatever its status code.

        Raises:
            TransportFailureError: If no response was received.
        """
        ...


def _caused_by_ssl(exc: BaseException) -> bool:
    """Walk the exception chain looking for a TLS failure."""
    current: BaseException | None = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify_transport_error(exc: httpx.TransportError, url: str) -> TransportFailureError:
    """Map an httpx transport exception onto the fetch error taxonomy.

    Args:
        exc: Exception raised by httpx.
        url: Requested URL.

    Returns:
        Matching TransportFailureError (not raised).
    """
    if isinstance(exc, httpx.UnsupportedProtocol):
        return MalformedURLError(url, str(exc))
    if isinstance(exc, httpx.TimeoutException):
        return TransportFailureError(
            f"Request timed out: {exc}", url, FetchErrorClass.NETWORK_TIMEOUT
        )
    if _caused_by_ssl(exc):
        return TransportFailureError(
            f"TLS error: {exc}", url, FetchErrorClass.SSL_ERROR
        )
    if isinstance(exc, httpx.ConnectError):
        return TransportFailureError(
            f"Connection failed: {exc}", url, FetchErrorClass.CONNECTION_ERROR
        )
    return TransportFailureError(
        f"Transport error: {exc}", url, FetchErrorClass.TRANSPORT_ERROR
    )


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``.

    Either wraps a caller-owned client or builds and owns one from a
    FetchConfig. Use as an async context manager to close an owned client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        config: FetchConfig | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Existing client to send through (not closed by us).
            config: Settings for a client built here when none is given.
        """
        self._config = config or FetchConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self._config.timeout_seconds,
            follow_redirects=self._config.follow_redirects,
            headers=self._config.default_headers(),
        )

    async def send(self, request: FetchRequest) -> httpx.Response:
        """Send one request through the client.

        Raises:
            TransportFailureError: On any network-layer failure.
            MalformedURLError: If httpx rejects the URL itself.
        """
        options = request.options
        try:
            return await self._client.request(
                options.method,
                request.url,
                headers=options.headers or None,
                params=options.params or None,
                content=options.content,
            )
        except httpx.InvalidURL as e:
            raise MalformedURLError(request.url, str(e)) from e
        except httpx.TransportError as e:
            error = classify_transport_error(e, request.url)
            logger.debug(
                "transport_error",
                component="fetch",
                url=redact_url_credentials(request.url),
                error_class=error.error_class.value,
            )
            raise error from e
        except httpx.RequestError as e:
            # TooManyRedirects, DecodingError: no usable response arrived
            logger.debug(
                "transport_error",
                component="fetch",
                url=redact_url_credentials(request.url),
                error_class=FetchErrorClass.TRANSPORT_ERROR.value,
            )
            raise TransportFailureError(str(e) or type(e).__name__, request.url) from e

    async def aclose(self) -> None:
        """Close the client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
