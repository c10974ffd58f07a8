"""
Thinking Monitor - Configuration
=================================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Thinking Monitor"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # ==========================================================================
    # Server (localhost only)
    # ==========================================================================
    HOST: str = "127.0.0.1"
    PORT: int = 3355
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3356", "http://127.0.0.1:3356"]

    # ==========================================================================
    # Ingestion Limits
    # ==========================================================================
    MAX_PAYLOAD_SIZE: int = 10 * 1024  # characters kept from opaque payloads
    MAX_BODY_SIZE: int = 5 * 1024 * 1024  # bytes per POST body
    MAX_ID_LENGTH: int = 256
    ID_PATTERN: str = r"^[a-zA-Z0-9._-]+$"
    REDACT_SECRETS: bool = True

    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    RATE_LIMIT_PER_SECOND: int = 100
    RATE_LIMIT_WINDOW_SECONDS: float = 1.0

    # ==========================================================================
    # Subscribers
    # ==========================================================================
    SUBSCRIBER_QUEUE_SIZE: int = 1000
    MAX_WS_CONNECTIONS: int = 10
    WS_MAX_MESSAGE_SIZE: int = 100 * 1024  # bytes per client frame
    WS_MAX_INVALID_MESSAGES: int = 5

    # ==========================================================================
    # Tool Call Sweep
    # ==========================================================================
    TOOL_CALL_TTL_SECONDS: float = 300.0
    TOOL_CALL_SWEEP_INTERVAL_SECONDS: float = 60.0
    MAX_PENDING_TOOL_CALLS: int = 10_000

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @computed_field  # type: ignore[misc]
    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
