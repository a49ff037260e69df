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

    Note: We use lru_cache on get_settings() to ensure we only load
    configuration once. Tests that need different values should build
    their own Settings(...) and pass it in explicitly instead of
    clearing the cache.
    """

    # Control-plane database (tenant directory lives here)
    CONTROL_DATABASE_URL: str = "sqlite:///./hrms_control.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Per-tenant data stores
    # {database} is replaced by the tenant's physical database name
    # (company_<tenant id> unless the directory entry overrides it)
    TENANT_DATABASE_URL_TEMPLATE: str = "sqlite+aiosqlite:///./tenants/{database}.db"
    TENANT_POOL_SIZE: int = 5
    TENANT_CONNECT_TIMEOUT: float = 10.0
    TENANT_QUERY_TIMEOUT: float = 15.0

    # Cross-tenant sweeps
    AGGREGATION_CONCURRENCY: int = 8
    AGGREGATION_TIMEOUT: float = 60.0
    ACTIVITY_FEED_PER_TENANT: int = 50
    ACTIVITY_FEED_LIMIT: int = 100

    # Security settings
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    PLATFORM_ADMIN_ROLE: str = "psa"

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    This is efficient but means settings are immutable at runtime.
    """
    return Settings()
