"""
Unified configuration for callgate.

This module provides a single Settings class holding the library-wide
defaults: logging, user-agent propagation, the default retry policy and the
ambient credential used by channel pools.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for .env file loading (allows running from any CWD)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Library-wide settings for callgate.

    Environment variables are loaded from .env file and can be overridden
    by actual environment variables, all prefixed with CALLGATE_.
    """

    # Service identification
    SERVICE_NAME: str = "callgate"
    LOG_LEVEL: str = "INFO"

    # User agent propagation
    USER_AGENT_HEADER: str = "x-api-client"

    # Default retry policy
    RETRY_MAX_ATTEMPTS: int = 5
    RETRY_INITIAL_BACKOFF: float = 0.1
    RETRY_MAX_BACKOFF: float = 60.0
    RETRY_BACKOFF_MULTIPLIER: float = 1.3
    RETRY_JITTER: bool = True

    # Ambient credentials
    CREDENTIALS_INSECURE: bool = False
    CREDENTIALS_ACCESS_TOKEN: str | None = None
    CREDENTIALS_ROOT_CERTIFICATES: str | None = None
    CREDENTIALS_SCOPED: bool = False
    CREDENTIALS_USE_JWT_ACCESS: bool = False

    model_config = SettingsConfigDict(
        env_prefix="CALLGATE_",
        env_file=PROJECT_ROOT / ".env",
        extra="ignore",
    )


# Global settings instance
settings = Settings()  # type: ignore
