"""Configuration models for the resilient fetch layer."""

import re
from typing import Annotated
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from resilient_fetch.features.fetch.constants import (
    ALLOWED_SCHEMES,
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_PROXY_TEMPLATES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from resilient_fetch.features.fetch.models import RetryPolicy


# Plain DNS labels joined by dots; anything else (wildcards, regex) is rejected.
HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
    r"(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*$"
)


class FetchConfig(BaseModel):
    """Configuration for the resilient fetch layer.

    Holds the transport settings, the retry policy and the two
    configuration constants of the proxy fallback chain: the host
    allow-list and the ordered proxy templates.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    timeout_seconds: Annotated[float, Field(ge=1.0, le=300.0)] = (
        DEFAULT_TIMEOUT_SECONDS
    )
    follow_redirects: bool = True
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    allowed_hosts: tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    proxy_templates: tuple[str, ...] = DEFAULT_PROXY_TEMPLATES

    @field_validator("allowed_hosts")
    @classmethod
    def validate_allowed_hosts(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lowercase and de-duplicate hosts, keeping their order."""
        seen: dict[str, None] = {}
        for host in v:
            normalized = host.strip().lower()
            if not HOSTNAME_PATTERN.match(normalized):
                msg = f"Invalid allow-list host {host!r}: expected a plain hostname"
                raise ValueError(msg)
            seen.setdefault(normalized, None)
        return tuple(seen)

    @field_validator("proxy_templates")
    @classmethod
    def validate_proxy_templates(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure every proxy template is an absolute http(s) URL prefix."""
        for template in v:
            parts = urlsplit(template)
            if parts.scheme not in ALLOWED_SCHEMES or not parts.netloc:
                msg = f"Invalid proxy template {template!r}: expected http(s) URL"
                raise ValueError(msg)
        return v

    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        return {
            "User-Agent": self.user_agent,
            "Accept": "*/*",
        }
