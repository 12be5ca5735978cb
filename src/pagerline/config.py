"""
Application settings using Pydantic.

Provides environment-based configuration loading with PAGERLINE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAGERLINE_",
    )

    # Database
    database_url: str = "postgresql+psycopg://localhost/pagerline"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Debug
    debug: bool = False

    # Environment
    environment: str = "development"

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = []

    # Queue settings
    job_queue_backend: str = "memory"  # memory, redis, sqs
    job_max_attempts: int = 3
    worker_poll_interval_seconds: float = 1.0
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10
    redis_queue_key: str = "pagerline:jobs"
    redis_lease_seconds: int = 300
    aws_region: str = "us-east-1"
    sqs_queue_url: str | None = None

    # HTTP client settings
    http_timeout: int = 30

    # Slack
    slack_bot_token: str | None = None
    slack_default_channel: str | None = None

    # Twilio (SMS and voice)
    twilio_base_url: str = "https://api.twilio.com/2010-04-01"
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None

    # Transactional email API
    email_api_url: str = "https://api.sendgrid.com/v3"
    email_api_key: str | None = None
    email_from_address: str = "pager@example.com"

    # Links embedded in pages
    frontend_url: str = "http://localhost:3000"
    api_public_url: str = "http://localhost:5050"

    # Paging and schedules
    paging_default_repeat_interval_seconds: int = 300
    schedule_max_range_days: int = 93


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
