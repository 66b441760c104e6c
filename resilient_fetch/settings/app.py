"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_fetch.features.fetch.config import FetchConfig
from resilient_fetch.features.fetch.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from resilient_fetch.features.fetch.models import RetryPolicy


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    github_token: str | None = Field(default=None, validation_alias="GITHUB_TOKEN")
    fetch_timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        ge=1.0,
        le=300.0,
        validation_alias="FETCH_TIMEOUT_SECONDS",
    )
    fetch_max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, ge=1, validation_alias="FETCH_MAX_RETRIES"
    )
    fetch_user_agent: str = Field(
        default=DEFAULT_USER_AGENT, validation_alias="FETCH_USER_AGENT"
    )

    def to_fetch_config(self) -> FetchConfig:
        """Build the fetch configuration from environment settings."""
        return FetchConfig(
            user_agent=self.fetch_user_agent,
            timeout_seconds=self.fetch_timeout_seconds,
            retry_policy=RetryPolicy(max_retries=self.fetch_max_retries),
        )

    def auth_headers(self) -> dict[str, str]:
        """Authorization header for GitHub requests, if a token is set."""
        if not self.github_token:
            return {}
        return {"Authorization": f"Bearer {self.github_token}"}


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
