"""HTTP constants for the fetch layer.

Centralizes status ranges, rate-limit headers, backoff timing and the
default allow-list/proxy chain to avoid duplication across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 400  # 2xx and 3xx count as ok
HTTP_STATUS_FORBIDDEN = 403

# Rate limit headers (looked up case-insensitively)
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RATE_LIMIT_EXHAUSTED_VALUE = "0"

# Backoff schedule (milliseconds)
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 10000
DEFAULT_EXPONENTIAL_BASE = 2.0

# Longest single rate-limit cooldown a call will wait out (exclusive)
MAX_RATE_LIMIT_WAIT_MS = 60000

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "resilient-fetch/0.1"

# Only these schemes are eligible for proxying
ALLOWED_SCHEMES = frozenset({"http", "https"})

DEFAULT_ALLOWED_HOSTS: tuple[str, ...] = (
    "raw.githubusercontent.com",
    "api.github.com",
)

DEFAULT_PROXY_TEMPLATES: tuple[str, ...] = (
    "https://api.allorigins.win/raw?url=",
    "https://corsproxy.io/?",
)
