"""Feature packages for resilient-fetch."""
