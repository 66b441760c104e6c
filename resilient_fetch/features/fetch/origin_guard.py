"""Allow-list check for URLs eligible for proxy fallback."""

from collections.abc import Iterable
from urllib.parse import urlsplit

from resilient_fetch.features.fetch.constants import (
    ALLOWED_SCHEMES,
    DEFAULT_ALLOWED_HOSTS,
)


def parse_hostname(url: object) -> str | None:
    """Extract the lowercased hostname of an absolute http(s) URL.

    Args:
        url: Candidate URL. Any type is accepted.

    Returns:
        The hostname, or None if the input is not an absolute http(s) URL.
    """
    if not isinstance(url, str):
        return None

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        # Raised for malformed netlocs such as unbalanced IPv6 brackets
        return None

    if parts.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
        return None
    return hostname


def host_matches(hostname: str, entry: str) -> bool:
    """Check a hostname against one allow-list entry.

    Matches the entry itself or a true subdomain of it. A host that only
    ends with the entry's text (``evilapi.github.com``) does not match.
    """
    entry = entry.lower()
    return hostname == entry or hostname.endswith("." + entry)


def is_allowed(
    url: object,
    allowed_hosts: Iterable[str] = DEFAULT_ALLOWED_HOSTS,
) -> bool:
    """Check whether a URL's host is on the allow-list.

    Malformed input is never an error: it is simply not allowed.

    Args:
        url: Candidate URL.
        allowed_hosts: Trusted hostnames, compared case-insensitively.

    Returns:
        True if the host equals an entry or is a subdomain of one.
    """
    hostname = parse_hostname(url)
    if hostname is None:
        return False
    return any(host_matches(hostname, entry) for entry in allowed_hosts)
