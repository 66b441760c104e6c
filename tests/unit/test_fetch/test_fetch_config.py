"""Unit tests for fetch configuration."""

import pytest
from pydantic import ValidationError

from resilient_fetch.features.fetch.config import FetchConfig
from resilient_fetch.features.fetch.constants import (
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_PROXY_TEMPLATES,
)
from resilient_fetch.features.fetch.models import RetryPolicy


class TestFetchConfigDefaults:
    """Tests for default configuration values."""

    def test_defaults(self) -> None:
        """Test the built-in allow-list, proxy chain and policy."""
        config = FetchConfig()

        assert config.allowed_hosts == DEFAULT_ALLOWED_HOSTS
        assert config.proxy_templates == DEFAULT_PROXY_TEMPLATES
        assert config.retry_policy == RetryPolicy()
        assert config.timeout_seconds == 30.0
        assert config.follow_redirects is True

    def test_default_allow_list_contents(self) -> None:
        """Test that only GitHub API and raw content hosts are allowed."""
        assert DEFAULT_ALLOWED_HOSTS == ("raw.githubusercontent.com", "api.github.com")

    def test_default_headers(self) -> None:
        """Test that the user agent is sent."""
        config = FetchConfig(user_agent="probe/2.0")

        assert config.default_headers()["User-Agent"] == "probe/2.0"


class TestAllowedHostsValidation:
    """Tests for allow-list validation."""

    def test_normalizes_and_deduplicates(self) -> None:
        """Test lowercasing and order-preserving de-duplication."""
        config = FetchConfig(
            allowed_hosts=["API.GitHub.com", "example.org", "api.github.com"]
        )

        assert config.allowed_hosts == ("api.github.com", "example.org")

    @pytest.mark.parametrize(
        "host", ["*.github.com", "api\\.github\\.com", "", "api github.com", ".github.com"]
    )
    def test_rejects_patterns(self, host: str) -> None:
        """Test that wildcard, regex and empty entries are rejected."""
        with pytest.raises(ValidationError):
            FetchConfig(allowed_hosts=[host])

    def test_empty_allow_list_permitted(self) -> None:
        """Test that an empty allow-list disables proxy fallback."""
        assert FetchConfig(allowed_hosts=[]).allowed_hosts == ()


class TestProxyTemplatesValidation:
    """Tests for proxy template validation."""

    def test_accepts_https_prefix(self) -> None:
        """Test a valid custom chain, keeping its order."""
        templates = ["https://b.test/?u=", "https://a.test/raw?url="]

        assert FetchConfig(proxy_templates=templates).proxy_templates == tuple(templates)

    @pytest.mark.parametrize("template", ["ftp://proxy.test/?", "proxy.test/?", ""])
    def test_rejects_non_http_templates(self, template: str) -> None:
        """Test that templates must be absolute http(s) URLs."""
        with pytest.raises(ValidationError):
            FetchConfig(proxy_templates=[template])


class TestFetchConfigBounds:
    """Tests for numeric bounds and immutability."""

    def test_timeout_bounds(self) -> None:
        """Test that the timeout must be within 1..300 seconds."""
        with pytest.raises(ValidationError):
            FetchConfig(timeout_seconds=0.5)
        with pytest.raises(ValidationError):
            FetchConfig(timeout_seconds=301)

    def test_unknown_field_rejected(self) -> None:
        """Test that typos in config keys fail loudly."""
        with pytest.raises(ValidationError):
            FetchConfig(proxies=["https://x.test/?"])  # type: ignore[call-arg]

    def test_config_immutable(self) -> None:
        """Test that the config is frozen."""
        config = FetchConfig()

        with pytest.raises(ValidationError):
            config.allowed_hosts = ("evil.net",)  # type: ignore[misc]
