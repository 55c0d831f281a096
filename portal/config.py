"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    get_settings() is cached, so tests that change the environment
    must call get_settings.cache_clear().
    """

    # Database settings
    DATABASE_URL: str = "postgresql://localhost/portal_dev"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Security settings
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Redis for rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Base domain used for subdomain tenant routing (acme.<PLATFORM_DOMAIN>)
    PLATFORM_DOMAIN: str = "portal.local"

    # Per-tenant request rate limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_BURST: int = 10

    # MCP signing secrets
    SECRET_RETIRED_GRACE_DAYS: int = 60
    SECRET_EXPIRY_WARNING_DAYS: int = 14
    REVEAL_TOKEN_TTL_MINUTES: int = 15
    SECRET_ACTION_LIMIT_PER_HOUR: int = 10

    # Integration recommendations
    RECOMMENDATION_MIN_SCORE: int = 20
    RECOMMENDATION_PERSIST_LIMIT: int = 20

    # Outbound HTTP (provider test pings)
    OUTBOUND_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
