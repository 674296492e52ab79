"""Configuration management for Inbox Assistant.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the INBOX_ASSISTANT_ prefix (e.g., INBOX_ASSISTANT_LLM_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOX_ASSISTANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    database_url: str = Field(
        default="sqlite:///inbox_assistant.sqlite3",
        description="SQLAlchemy database URL (SQLite or Postgres)",
    )

    # Language model (Ollama)
    llm_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    llm_model: str = Field(
        default="llama3.1:8b",
        description="Model used for rule judging and placeholder generation",
    )
    llm_timeout: int = Field(
        default=60,
        description="Timeout for a single inference request in seconds",
    )
    llm_max_retries: int = Field(
        default=2,
        description="Retries for transient inference failures",
    )

    # Email providers
    provider_timeout: int = Field(
        default=30,
        description="Timeout for a single provider API request in seconds",
    )
    provider_max_retries: int = Field(
        default=3,
        description="Retries for rate-limited or transient provider failures",
    )
    retry_delay: float = Field(
        default=1.0,
        description="Initial delay between retries in seconds",
    )
    retry_backoff: float = Field(
        default=2.0,
        description="Multiplier applied to the retry delay after each attempt",
    )

    google_client_id: str | None = Field(
        default=None,
        description="OAuth client id used to refresh Gmail access tokens",
    )
    google_client_secret: str | None = Field(
        default=None,
        description="OAuth client secret used to refresh Gmail access tokens",
    )
    google_pubsub_topic: str | None = Field(
        default=None,
        description="Pub/Sub topic receiving Gmail push notifications",
    )

    microsoft_graph_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Microsoft Graph API base URL",
    )
    microsoft_notification_url: str | None = Field(
        default=None,
        description="Public callback URL for Microsoft Graph change notifications",
    )

    # Rule execution
    webhook_timeout: int = Field(
        default=15,
        description="Timeout for outbound webhook calls in seconds",
    )
    max_placeholder_concurrency: int = Field(
        default=5,
        description="Maximum number of placeholder spans resolved concurrently",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
