"""Environment-backed configuration."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PRODUCT_ID = "launchpad"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_DATABASE_URL = "sqlite:///release_pilot.db"
DEFAULT_DATADOG_SITE = "datadoghq.com"
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_HTTP_TIMEOUT = 30.0


class Settings(BaseSettings):
    """Environment-backed settings for Release Pilot."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    github_token: str | None = Field(default=None, alias="GITHUB_TOKEN")
    gh_token: str | None = Field(default=None, alias="GH_TOKEN")
    github_repo: str | None = Field(default=None, alias="GITHUB_REPO")

    datadog_api_key: str | None = Field(default=None, alias="DATADOG_API_KEY")
    datadog_app_key: str | None = Field(default=None, alias="DATADOG_APP_KEY")
    datadog_site: str = Field(default=DEFAULT_DATADOG_SITE, alias="DATADOG_SITE")

    incidents_api_url: str | None = Field(default=None, alias="INCIDENTS_API_URL")
    incidents_api_key: str | None = Field(default=None, alias="INCIDENTS_API_KEY")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default=DEFAULT_OPENAI_MODEL, alias="OPENAI_MODEL")

    slack_signing_secret: str | None = Field(default=None, alias="SLACK_SIGNING_SECRET")
    slack_verification_token: str | None = Field(
        default=None,
        alias="SLACK_VERIFICATION_TOKEN",
    )
    slack_webhook_url: str | None = Field(default=None, alias="SLACK_WEBHOOK_URL")

    database_url: str = Field(default=DEFAULT_DATABASE_URL, alias="DATABASE_URL")
    app_url: str = Field(default=DEFAULT_APP_URL, alias="RELEASE_PILOT_APP_URL")
    default_product_id: str = Field(
        default=DEFAULT_PRODUCT_ID,
        alias="RELEASE_PILOT_PRODUCT",
    )
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, alias="HTTP_TIMEOUT_SECONDS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def resolved_github_token(self) -> str | None:
        """Return the first configured GitHub token."""
        return self.github_token or self.gh_token


def get_settings() -> Settings:
    """Load settings from environment variables."""
    return Settings.model_validate({})
