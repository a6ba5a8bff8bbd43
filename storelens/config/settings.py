"""
StoreLens Multi-Tenant Commerce Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="storelens", alias="database", description="Database name")
    user: str = Field(default="storelens", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg, or the explicit override"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=True, description="Use Redis for the analytics cache")
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class ShopifySettings(BaseSettings):
    """Shopify Admin API Configuration"""

    model_config = SettingsConfigDict(env_prefix="SHOPIFY_")

    api_version: str = Field(default="2024-01", description="Admin REST API version")
    request_timeout_seconds: float = Field(default=30.0, description="Per-request timeout")
    page_limit: int = Field(default=250, ge=1, le=250, description="Records per page")
    max_pages: int = Field(default=40, ge=1, description="Upper bound on pages fetched per resource")
    max_retries: int = Field(default=3, ge=1, description="Attempts for transport errors")
    webhook_secret: Optional[SecretStr] = Field(default=None, description="HMAC secret for webhook verification")
    push_local_edits: bool = Field(default=False, description="Push dashboard product edits back to Shopify")


class SyncSettings(BaseSettings):
    """Periodic Sync Scheduler Configuration"""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    enabled: bool = Field(default=True, description="Start the scheduler with the API")
    interval_minutes: float = Field(default=15.0, gt=0, description="Minutes between sweeps")


class AnalyticsSettings(BaseSettings):
    """Analytics Aggregation Configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    top_n: int = Field(default=5, ge=1, description="Size of top customer/product lists")
    trend_days: int = Field(default=7, ge=1, description="Trailing days in the sales trend")
    growth_period_days: int = Field(default=30, ge=1, description="Comparison window for growth rates")
    cache_ttl_seconds: int = Field(default=300, ge=0, description="Analytics response cache TTL")


class SecuritySettings(BaseSettings):
    """Security Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Rate limiting
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")

    # Operational endpoints (sync control); disabled while unset
    admin_api_token: Optional[SecretStr] = Field(default=None, alias="ADMIN_API_TOKEN", description="Admin API token")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storelens", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")
    api_workers: int = Field(default=1, alias="API_WORKERS", description="API workers")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    shopify: ShopifySettings = Field(default_factory=ShopifySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
