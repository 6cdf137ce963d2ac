"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local history database (images, failed jobs, preference documents)
    database_url: str = Field(default="sqlite+aiosqlite:///colorbook.db", alias="DATABASE_URL")

    # Replicate Image Generation
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="black-forest-labs/flux-kontext-pro", alias="REPLICATE_MODEL_VERSION"
    )
    replicate_hires_model_version: str = Field(
        default="google/nano-banana-pro", alias="REPLICATE_HIRES_MODEL_VERSION"
    )
    download_timeout_seconds: float = Field(default=60.0, gt=0, alias="DOWNLOAD_TIMEOUT_SECONDS")

    # Scheduling - kept low on purpose, the remote rate limits are strict
    generation_concurrency: int = Field(default=2, ge=1, alias="GENERATION_CONCURRENCY")
    pacing_seconds: float = Field(default=1.0, ge=0, alias="PACING_SECONDS")
    rate_limit_backoff_seconds: float = Field(default=10.0, ge=0, alias="RATE_LIMIT_BACKOFF_SECONDS")
    max_retries: int = Field(default=3, ge=0, alias="MAX_RETRIES")

    @property
    def has_api_key(self) -> bool:
        """Whether a Replicate token is configured."""
        return bool(self.replicate_api_token.strip())

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Fail fast in production when the API token is missing.

        Other environments start without a token so history and retry-queue
        commands keep working; generation then reports the missing key.
        """
        if self.app_env != "production":
            return self

        if not self.has_api_key:
            raise ValueError(
                "CRITICAL: Missing required environment variable:\n\n"
                "  - REPLICATE_API_TOKEN: Get your API token from "
                "https://replicate.com/account/api-tokens\n\n"
                "Please update your .env file and restart."
            )

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        processors = [
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
