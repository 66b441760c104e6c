"""Resilient HTTP fetch with retry, rate-limit waits and proxy fallback."""

__version__ = "0.1.0"
