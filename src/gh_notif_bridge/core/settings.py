"""Process-wide settings.

This module defines the tunables of the relay that are not tied to a single
account. Settings are loaded from environment variables (or an `.env` file)
with defaults matching GitHub's fair-use expectations. Per-account
credentials live in the YAML config instead, see `core.config`.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # Application metadata
    app_name: str = Field(default="gh-notif-bridge", alias="APP_NAME")
    config_path: str = Field(default="config.yaml", alias="GH_NOTIF_BRIDGE_CONFIG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # GitHub endpoints
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")
    github_web_url: str = Field(default="https://github.com", alias="GITHUB_WEB_URL")
    github_per_page: int = Field(default=50, alias="GITHUB_PER_PAGE")
    github_max_pages: int = Field(default=10, alias="GITHUB_MAX_PAGES")

    # Shared HTTP behaviour
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")

    # Polling cadence
    min_poll_interval_seconds: float = Field(
        default=60.0, ge=60.0, alias="MIN_POLL_INTERVAL_SECONDS"
    )
    error_backoff_seconds: float = Field(default=60.0, alias="ERROR_BACKOFF_SECONDS")

    # Matrix history scan used for checkpoint recovery
    matrix_history_page_size: int = Field(default=100, alias="MATRIX_HISTORY_PAGE_SIZE")
    checkpoint_max_pages: int | None = Field(default=None, alias="CHECKPOINT_MAX_PAGES")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
