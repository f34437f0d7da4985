"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

from typing import Optional

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
    APP_NAME: str = "Storefront"
    SITE_NAME: str = "Storefront"
    ENVIRONMENT: str = "production"
    HOST: str = "127.0.0.1"
    PORT: int = 3000

    # Database
    DATABASE_URL: str = "sqlite:///./storefront.db"
    # PostgreSQL transport security, e.g. "verify-ca" with a CA bundle path
    DB_SSL_MODE: Optional[str] = None
    DB_SSL_ROOT_CERT: Optional[str] = None
    DB_POOL_PRE_PING: bool = True

    # Sessions
    SESSION_SECRET: Optional[str] = None
    SESSION_COOKIE_NAME: str = "storefront.sid"
    SESSION_MAX_AGE: int = 24 * 60 * 60  # one day, seconds
    SESSION_TABLE_NAME: str = "session"
    SESSION_CREATE_TABLE_IF_MISSING: bool = True
    SESSION_SWEEP_INTERVAL: float = 15 * 60

    # Logging
    LOG_LEVEL: Optional[str] = None
    LOG_JSON: Optional[bool] = None

    @property
    def DEV_MODE(self) -> bool:
        """Development mode relaxes the Secure cookie flag and enables live reload."""
        return "dev" in self.ENVIRONMENT.lower()

    @property
    def environment_name(self) -> str:
        return self.ENVIRONMENT.lower() or "production"


# Global settings instance
settings = Settings()
