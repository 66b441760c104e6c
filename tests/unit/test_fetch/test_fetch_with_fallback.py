"""Unit tests for the proxy fallback chain."""

import httpx
import pytest

from resilient_fetch.features.fetch.constants import DEFAULT_PROXY_TEMPLATES
from resilient_fetch.features.fetch.errors import (
    AllProxiesFailedError,
    DisallowedOriginError,
    FetchErrorClass,
    TransportFailureError,
)
from resilient_fetch.features.fetch.fallback import (
    build_proxy_url,
    encode_uri_component,
    fetch_with_fallback,
)
from resilient_fetch.features.fetch.metrics import FetchMetrics
from resilient_fetch.features.fetch.models import RequestOptions
from resilient_fetch.features.fetch.retry import fetch_with_retry
from resilient_fetch.features.fetch.transport import HttpxTransport
from tests.helpers.time import FakeClock
from tests.helpers.transport import (
    ScriptedTransport,
    connect_error,
    failing_transport_for,
    make_response,
)


URL = "https://raw.githubusercontent.com/octocat/hello-world/main/README.md"
PROXIES = ("https://proxy-one.test/raw?url=", "https://proxy-two.test/?")


class TestDisallowedOrigin:
    """Tests for the allow-list gate."""

    @pytest.mark.asyncio
    async def test_disallowed_host_never_touches_transport(self) -> None:
        """Test that a disallowed host fails before any request."""
        transport = ScriptedTransport([make_response(200)])

        with pytest.raises(DisallowedOriginError) as exc_info:
            await fetch_with_fallback(
                "https://evil.example.com/x", transport=transport, metrics=FetchMetrics()
            )

        assert transport.requests == []
        assert "not an allow-listed domain" in str(exc_info.value)
        assert exc_info.value.error_class == FetchErrorClass.DISALLOWED_ORIGIN

    @pytest.mark.asyncio
    async def test_malformed_url_is_disallowed(self) -> None:
        """Test that a malformed URL is rejected as disallowed."""
        transport = ScriptedTransport([make_response(200)])

        with pytest.raises(DisallowedOriginError):
            await fetch_with_fallback(
                "api.github.com/x", transport=transport, metrics=FetchMetrics()
            )

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_custom_allow_list(self) -> None:
        """Test that the injected allow-list replaces the default one."""
        transport = ScriptedTransport([make_response(200)])

        with pytest.raises(DisallowedOriginError):
            await fetch_with_fallback(
                URL,
                transport=transport,
                allowed_hosts=("example.org",),
                metrics=FetchMetrics(),
            )


class TestDirectRoute:
    """Tests for the direct attempt."""

    @pytest.mark.asyncio
    async def test_direct_success_skips_proxies(self) -> None:
        """Test that a direct response is returned without proxying."""
        ok = make_response(200)
        transport = ScriptedTransport([ok])

        response = await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=FetchMetrics()
        )

        assert response is ok
        assert transport.urls == [URL]

    @pytest.mark.asyncio
    async def test_direct_non_ok_status_is_returned(self) -> None:
        """Test that only transport failures trigger the fallback."""
        not_found = make_response(404)
        transport = ScriptedTransport([not_found])

        response = await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=FetchMetrics()
        )

        assert response is not_found
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_direct_request_carries_options(self) -> None:
        """Test that options are sent directly but never to proxies."""
        options = RequestOptions(headers={"Authorization": "Bearer secret"})
        transport = ScriptedTransport([connect_error(), make_response(200)])

        await fetch_with_fallback(
            URL,
            transport=transport,
            proxy_templates=PROXIES,
            options=options,
            metrics=FetchMetrics(),
        )

        assert transport.requests[0].options is options
        assert transport.requests[1].options == RequestOptions()


class TestProxyChain:
    """Tests for walking the proxy list."""

    @pytest.mark.asyncio
    async def test_second_proxy_succeeds_in_order(self) -> None:
        """Test direct, proxy[0] failing, then proxy[1] answering."""
        ok = make_response(200, content=b"# hello")
        transport = ScriptedTransport([connect_error(), connect_error(), ok])

        response = await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=FetchMetrics()
        )

        assert response is ok
        assert transport.urls == [
            URL,
            build_proxy_url(PROXIES[0], URL),
            build_proxy_url(PROXIES[1], URL),
        ]

    @pytest.mark.asyncio
    async def test_first_proxy_success_stops_chain(self) -> None:
        """Test that the chain stops at the first received response."""
        proxied = build_proxy_url(PROXIES[0], URL)
        transport = failing_transport_for({URL}, make_response(200))

        await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=FetchMetrics()
        )

        assert transport.urls == [URL, proxied]

    @pytest.mark.asyncio
    async def test_proxy_non_ok_status_is_returned(self) -> None:
        """Test that a proxy's error status ends the chain."""
        bad_gateway = make_response(502)
        transport = ScriptedTransport([connect_error(), bad_gateway])

        response = await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=FetchMetrics()
        )

        assert response is bad_gateway
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_every_call_restarts_from_first_proxy(self) -> None:
        """Test that proxy order is not adapted between calls."""
        proxy_one = build_proxy_url(PROXIES[0], URL)
        transport = failing_transport_for({URL, proxy_one}, make_response(200))

        for _ in range(2):
            await fetch_with_fallback(
                URL, transport=transport, proxy_templates=PROXIES,
                metrics=FetchMetrics(),
            )

        assert transport.urls == [
            URL,
            proxy_one,
            build_proxy_url(PROXIES[1], URL),
        ] * 2

    @pytest.mark.asyncio
    async def test_default_proxy_templates(self) -> None:
        """Test that the built-in proxy chain is used when none is given."""
        transport = ScriptedTransport([connect_error(), make_response(200)])

        await fetch_with_fallback(URL, transport=transport, metrics=FetchMetrics())

        assert transport.urls[1] == DEFAULT_PROXY_TEMPLATES[0] + encode_uri_component(
            URL
        )


class TestAllProxiesFailed:
    """Tests for exhausting every route."""

    @pytest.mark.asyncio
    async def test_last_proxy_error_is_cause(self) -> None:
        """Test that the last proxy failure is chained as the cause."""
        last = connect_error(build_proxy_url(PROXIES[1], URL))
        transport = ScriptedTransport([connect_error(), connect_error(), last])

        with pytest.raises(AllProxiesFailedError) as exc_info:
            await fetch_with_fallback(
                URL, transport=transport, proxy_templates=PROXIES,
                metrics=FetchMetrics(),
            )

        assert exc_info.value.__cause__ is last
        assert exc_info.value.last_error is last
        assert exc_info.value.attempts == 2
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_empty_proxy_list_generic_message(self) -> None:
        """Test the generic failure when there is no proxy to try."""
        transport = ScriptedTransport([connect_error()])

        with pytest.raises(AllProxiesFailedError) as exc_info:
            await fetch_with_fallback(
                URL, transport=transport, proxy_templates=(), metrics=FetchMetrics()
            )

        assert str(exc_info.value) == "All proxies failed"
        assert exc_info.value.__cause__ is None
        assert len(transport.requests) == 1


class TestRedirectLoop:
    """Tests for direct routes that never settle on a response."""

    @pytest.mark.asyncio
    async def test_redirect_loop_falls_back_to_proxy(self) -> None:
        """Test that a redirect loop on the direct route moves on to proxies."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "raw.githubusercontent.com":
                return httpx.Response(302, headers={"Location": URL})
            return httpx.Response(200, text="proxied")

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), follow_redirects=True
        )

        async with client:
            response = await fetch_with_fallback(
                URL, transport=HttpxTransport(client), proxy_templates=PROXIES,
                metrics=FetchMetrics(),
            )

        assert response.status_code == 200
        assert response.text == "proxied"
        assert response.request.url.host == "proxy-one.test"

    @pytest.mark.asyncio
    async def test_redirect_loop_retried_by_fetch_with_retry(self) -> None:
        """Test that the retry loop treats a redirect loop as a transport failure."""
        clock = FakeClock()
        metrics = FetchMetrics()
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(302, headers={"Location": URL})
            ),
            follow_redirects=True,
        )

        async with client:
            with pytest.raises(TransportFailureError) as exc_info:
                await fetch_with_retry(
                    URL, transport=HttpxTransport(client), sleep=clock.sleep,
                    clock=clock.time, metrics=metrics,
                )

        assert exc_info.value.error_class == FetchErrorClass.TRANSPORT_ERROR
        assert clock.sleeps_ms == [1000, 2000]
        assert metrics.http_attempts_total == 3


class TestFallbackMetrics:
    """Tests for counters updated by the chain."""

    @pytest.mark.asyncio
    async def test_records_route_and_proxy_attempts(self) -> None:
        """Test that proxy attempts and the answering route are recorded."""
        metrics = FetchMetrics()
        transport = ScriptedTransport([connect_error(), connect_error(), make_response(200)])

        await fetch_with_fallback(
            URL, transport=transport, proxy_templates=PROXIES, metrics=metrics
        )

        assert metrics.http_attempts_total == 3
        assert metrics.proxy_attempts_total == 2
        assert metrics.fallback_success_total == {"proxy[1]": 1}

    @pytest.mark.asyncio
    async def test_records_disallowed_origin(self) -> None:
        """Test that a rejected origin is counted as a failure."""
        metrics = FetchMetrics()

        with pytest.raises(DisallowedOriginError):
            await fetch_with_fallback(
                "https://evil.example.com/",
                transport=ScriptedTransport([make_response(200)]),
                metrics=metrics,
            )

        assert metrics.failures_total == {"DISALLOWED_ORIGIN": 1}
        assert metrics.http_attempts_total == 0


class TestEncodeUriComponent:
    """Tests for proxy URL construction."""

    def test_encodes_reserved_characters(self) -> None:
        """Test that URL delimiters are percent-encoded."""
        assert (
            encode_uri_component("https://api.github.com/x?a=1&b=2#f")
            == "https%3A%2F%2Fapi.github.com%2Fx%3Fa%3D1%26b%3D2%23f"
        )

    def test_keeps_unreserved_marks(self) -> None:
        """Test that encodeURIComponent's unescaped marks are kept."""
        assert encode_uri_component("a-b_c.d!e~f*g'h(i)") == "a-b_c.d!e~f*g'h(i)"

    def test_encodes_space_and_unicode(self) -> None:
        """Test that spaces and non-ASCII are UTF-8 percent-encoded."""
        assert encode_uri_component("a b/é") == "a%20b%2F%C3%A9"

    def test_build_proxy_url_appends(self) -> None:
        """Test that the encoded URL is appended to the template."""
        assert (
            build_proxy_url("https://corsproxy.io/?", "https://api.github.com/")
            == "https://corsproxy.io/?https%3A%2F%2Fapi.github.com%2F"
        )
