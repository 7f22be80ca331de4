"""
Application Settings for the Entitlements Service

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    QUOTA_TIMEZONE is the operational timezone whose wall-clock midnight
    delimits the daily download window. It applies to every user.
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Authentication (JWT issued by the identity service)
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_webhook_tolerance_seconds: int = 300
    stripe_api_timeout_seconds: float = 10.0
    stripe_max_network_retries: int = 2
    payment_currency: str = "usd"

    # Quota / Activity
    quota_timezone: str = "UTC"
    download_milestones: list[int] = [10, 50, 100, 500, 1000, 5000]
    activity_feed_size: int = 15

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_runtime_config(self) -> "Settings":
        """Validate timezone and production secrets."""
        try:
            ZoneInfo(self.quota_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"QUOTA_TIMEZONE is not a known timezone: {self.quota_timezone}")

        if self.is_production:
            missing = [
                name.upper()
                for name in ("jwt_secret", "stripe_secret_key", "stripe_webhook_secret", "database_url")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")

        return self

    @property
    def quota_zone(self) -> ZoneInfo:
        """Operational timezone for the daily quota window."""
        return ZoneInfo(self.quota_timezone)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
