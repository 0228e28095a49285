"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Session Store Service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    DEV_MODE: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None

    # Storage backend
    STORAGE_BACKEND: Literal["dynamodb", "memory"] = "dynamodb"
    TABLE_NAME: str = "sessions"
    USERNAME_INDEX_NAME: str = "GSI1"
    AWS_REGION: str = "eu-west-1"
    DYNAMODB_ENDPOINT_URL: Optional[str] = None
    STORAGE_TIMEOUT_SECONDS: float = 5.0
    STORAGE_CONNECT_TIMEOUT_SECONDS: float = 2.0
    # botocore attempts per call; 1 disables the SDK retry loop
    STORAGE_MAX_ATTEMPTS: int = 1

    # Session lifetime
    SESSION_DEFAULT_TTL_SECONDS: int = 7 * 24 * 3600
    SESSION_MAX_TTL_SECONDS: int = 30 * 24 * 3600
    SESSION_ID_MAX_ATTEMPTS: int = 3

    # Rate limiting configuration
    rate_limit_enabled: bool = True
    rate_limit_read_endpoints: str = "100/minute"
    rate_limit_write_endpoints: str = "30/minute"

    # Optional Redis URL for distributed rate limiting
    # When set, rate limits will be shared across multiple instances
    redis_url: Optional[str] = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name"""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator(
        "STORAGE_TIMEOUT_SECONDS",
        "STORAGE_CONNECT_TIMEOUT_SECONDS",
        "SESSION_DEFAULT_TTL_SECONDS",
        "SESSION_MAX_TTL_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("STORAGE_MAX_ATTEMPTS", "SESSION_ID_MAX_ATTEMPTS")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def check_ttl_bounds(self):
        """The default session lifetime must fit under the maximum"""
        if self.SESSION_DEFAULT_TTL_SECONDS > self.SESSION_MAX_TTL_SECONDS:
            raise ValueError(
                "SESSION_DEFAULT_TTL_SECONDS cannot exceed SESSION_MAX_TTL_SECONDS"
            )
        return self

    @property
    def effective_log_level(self) -> str:
        """DEBUG in dev mode, otherwise the configured level"""
        return "DEBUG" if self.DEV_MODE else self.LOG_LEVEL


# Global settings instance
settings = Settings()
