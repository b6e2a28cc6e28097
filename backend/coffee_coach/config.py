"""Application configuration for the coffee coach relay."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from coffee_coach.errors import ConfigError

logger = logging.getLogger(__name__)

# HeyGen streaming API
HEYGEN_DEFAULT_BASE = "https://api.heygen.com"
SESSION_LIMIT_ERROR_CODE = 10004


class Settings(BaseSettings):
    """Runtime configuration loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parent.parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Coffee Coach Relay API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=4001, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")

    # HeyGen credentials
    heygen_api_key: str | None = Field(default=None, alias="HEYGEN_API_KEY")
    heygen_base: str = Field(default=HEYGEN_DEFAULT_BASE, alias="HEYGEN_BASE")
    heygen_timeout: float = Field(default=30.0, alias="HEYGEN_TIMEOUT")

    # Free-tier concurrency cap handling
    session_limit_max_attempts: int = Field(
        default=3, alias="SESSION_LIMIT_MAX_ATTEMPTS"
    )
    session_limit_retry_delay: float = Field(
        default=30.0, alias="SESSION_LIMIT_RETRY_DELAY"
    )
    session_limit_error_codes: list[int] = Field(
        default=[SESSION_LIMIT_ERROR_CODE], alias="SESSION_LIMIT_ERROR_CODES"
    )

    @property
    def provider_configured(self) -> bool:
        return bool(self.heygen_api_key)

    def require_api_key(self) -> str:
        """Return the HeyGen API key or raise if it is not configured."""
        if not self.heygen_api_key:
            logger.error("HEYGEN_API_KEY environment variable is not set")
            raise ConfigError("HEYGEN_API_KEY missing in environment")
        return self.heygen_api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings = get_settings()
