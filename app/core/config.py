"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables (and an optional env file)
- Centralizes config values (DB URI, bot token, staff channel, timeouts)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="sarafan",
        description="MongoDB database name"
    )
    MONGODB_CONNECT_RETRIES: int = Field(
        default=3,
        description="Connection attempts at startup before giving up"
    )
    MONGODB_RETRY_DELAY_SECONDS: float = Field(
        default=2.0,
        description="Fixed delay between connection attempts"
    )

    # Telegram
    TELEGRAM_BOT_TOKEN: Optional[str] = Field(
        default=None,
        description="Bot API token issued by @BotFather"
    )
    STAFF_CHANNEL_ID: Optional[str] = Field(
        default=None,
        description="Channel where new orders are announced to staff"
    )
    BOT_USERNAME: str = Field(
        default="InviteAstroBot",
        description="Public bot username, used to build referral deep links"
    )

    # Orders & reminders
    REMINDER_CHECK_INTERVAL_MINUTES: int = Field(
        default=30,
        description="How often the reminder sweep runs"
    )
    REMINDER_AFTER_HOURS: int = Field(
        default=24,
        description="Hours after the claim before a client gets a follow-up"
    )
    ORDER_ID_MAX_ATTEMPTS: int = Field(
        default=3,
        description="Inserts retried with a fresh ID on primary key collision"
    )
    REFERRAL_CODE_MAX_ATTEMPTS: int = Field(
        default=10,
        description="Uniqueness checks before falling back to a time-derived code"
    )

    # Deadlines for outbound calls
    STORE_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Upper bound for a single store operation"
    )
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Upper bound for a single send/edit call"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    LOG_SINK: str = Field(
        default="stdout",
        description="'stdout' or a file path to append logs to"
    )
    API_HOST: str = Field(
        default="0.0.0.0",
        description="Bind address for the HTTP API"
    )
    API_PORT: int = Field(
        default=8000,
        description="Port for the HTTP API"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )

    # Security
    API_KEY: Optional[str] = Field(
        default=None,
        description="Shared secret expected in the X-API-Key header"
    )

    @validator("API_KEY")
    def validate_api_key(cls, v, values):
        """Ensure the document callback API is protected in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("API_KEY is required in production environment")
        return v

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Re-reads settings from the given env file and updates the shared
    instance in place, so modules holding a reference see the new values.

    Raises:
        pydantic.ValidationError: If any value is invalid
    """
    fresh = Settings(_env_file=env_file) if env_file else Settings()

    for name in Settings.model_fields:
        setattr(settings, name, getattr(fresh, name))

    return settings


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.TELEGRAM_BOT_TOKEN:
        errors.append("TELEGRAM_BOT_TOKEN is required")

    if not settings.STAFF_CHANNEL_ID:
        errors.append("STAFF_CHANNEL_ID is required")

    if settings.is_production and not settings.API_KEY:
        errors.append("API_KEY is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
