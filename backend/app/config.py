"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache

from core.webhook_signing import (
    DEFAULT_TOLERANCE_SECONDS,
    MAX_WEBHOOK_BODY_SIZE,
    parse_secrets,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Storefront Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Storage Settings
    STORAGE_DRIVER: str = "memory"  # memory or redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 3.0

    # Webhook Settings
    # Comma-separated, newest first: "current_key,previous_key"
    WEBHOOK_SECRET: str = ""
    WEBHOOK_MAX_BODY_SIZE: int = MAX_WEBHOOK_BODY_SIZE
    WEBHOOK_MAX_AGE_SECONDS: int = DEFAULT_TOLERANCE_SECONDS
    WEBHOOK_RATE_LIMIT: int = 10
    WEBHOOK_RATE_WINDOW_MS: int = 60_000

    # Only honour X-Forwarded-For & co. when running behind a trusted proxy
    TRUST_PROXY_HEADERS: bool = True

    # Tenant cache Settings
    TENANT_NEGATIVE_CACHE_TTL_SECONDS: int = 30
    TENANT_NEGATIVE_CACHE_MAX_SIZE: int = 10_000
    CONFIG_CACHE_TTL_SECONDS: int = 300

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def webhook_secrets(self) -> list[str]:
        """Parse WEBHOOK_SECRET into a newest-first list of signing secrets."""
        return parse_secrets(self.WEBHOOK_SECRET)

    def validate_secrets(self) -> None:
        """Validate that production is not running with unsafe defaults.

        Raises:
            RuntimeError: If production has no webhook secret or uses the
                process-local memory storage driver
        """
        if self.is_production:
            if not self.webhook_secrets:
                raise RuntimeError(
                    "CRITICAL: WEBHOOK_SECRET environment variable must be set in production."
                )
            if self.STORAGE_DRIVER != "redis":
                raise RuntimeError(
                    "CRITICAL: STORAGE_DRIVER must be 'redis' in production. "
                    "The memory driver does not share state between instances."
                )

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
