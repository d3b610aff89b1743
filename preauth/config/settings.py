"""
Pre-Auth Engine - Configuration Settings

Centralized configuration using Pydantic Settings for type-safe
environment variable handling with validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Example: STORAGE_BACKEND=postgres will set storage_backend to "postgres"
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    app_debug: bool = Field(
        default=False,
        description="Enable debug mode (SQL echo)"
    )
    app_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # =========================================================================
    # Storage
    # =========================================================================
    storage_backend: Literal["memory", "postgres"] = Field(
        default="memory",
        description="Where pre-auth orders, post-auth orders and policies live"
    )
    velocity_backend: Literal["store", "redis"] = Field(
        default="store",
        description="Order history source for velocity counts"
    )

    # =========================================================================
    # Redis Configuration
    # =========================================================================
    redis_host: str = Field(
        default="localhost",
        description="Redis server hostname"
    )
    redis_port: int = Field(
        default=6379,
        description="Redis server port"
    )
    redis_db: int = Field(
        default=0,
        description="Redis database number"
    )
    redis_key_prefix: str = Field(
        default="preauth:",
        description="Prefix for all Redis keys to avoid conflicts"
    )
    redis_password: str | None = Field(
        default=None,
        description="Redis password (optional)"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # =========================================================================
    # PostgreSQL Configuration
    # =========================================================================
    postgres_host: str = Field(
        default="localhost",
        description="PostgreSQL server hostname"
    )
    postgres_port: int = Field(
        default=5432,
        description="PostgreSQL server port"
    )
    postgres_db: str = Field(
        default="preauth",
        description="PostgreSQL database name"
    )
    postgres_user: str = Field(
        default="preauth_user",
        description="PostgreSQL username"
    )
    postgres_password: str = Field(
        default="",
        description="PostgreSQL password (set via POSTGRES_PASSWORD env var)"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL for asyncpg."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================================================================
    # API Configuration
    # =========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="API server bind address"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )

    # =========================================================================
    # Security / Access Control
    # =========================================================================
    merchant_tokens: str = Field(
        default="",
        description="Comma-separated token:merchant_id pairs used to resolve callers"
    )
    default_merchant_id: str = Field(
        default="default",
        description="Merchant every caller acts as when MERCHANT_TOKENS is empty (non-production only)"
    )
    metrics_token: str | None = Field(
        default=None,
        description="Token required to access /metrics (optional)"
    )
    cors_allow_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def merchant_token_map(self) -> dict[str, str]:
        """Return the token -> merchant id mapping."""
        mapping: dict[str, str] = {}
        for pair in self.merchant_tokens.split(","):
            token, sep, merchant_id = pair.strip().partition(":")
            if sep and token and merchant_id:
                mapping[token.strip()] = merchant_id.strip()
        return mapping

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cors_allow_origins_list(self) -> list[str]:
        """Return CORS origins as a list."""
        if not self.cors_allow_origins:
            return []
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    # =========================================================================
    # External Collaborators
    # =========================================================================
    geoip_url_template: str | None = Field(
        default="https://ipapi.co/{ip}/json/",
        description="Geo-IP lookup URL; {ip} is replaced with the address. Empty disables lookups"
    )
    geoip_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for a single geo-IP lookup"
    )
    deep_analysis_url: str | None = Field(
        default=None,
        description="Deep-analysis endpoint; when unset the pre-auth derived analyzer is used"
    )
    deep_analysis_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a deep-analysis call during promotion"
    )

    # =========================================================================
    # Engine Windows
    # =========================================================================
    velocity_window_seconds: int = Field(
        default=3600,
        description="Lookback window for velocity counts"
    )
    post_auth_monitoring_days: int = Field(
        default=120,
        description="How long a promoted order stays under chargeback monitoring"
    )
    default_list_limit: int = Field(
        default=50,
        ge=1,
        description="Default result count for listing operations"
    )
    policy_defaults_path: str = Field(
        default="config/policy.yaml",
        description="YAML file with the default merchant risk policy"
    )

    # =========================================================================
    # Metrics Configuration
    # =========================================================================
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics endpoint"
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Enforce required security settings in production."""
        if self.app_env == "production":
            missing: list[str] = []
            if not self.merchant_token_map:
                missing.append("MERCHANT_TOKENS")
            if not self.metrics_token:
                missing.append("METRICS_TOKEN")
            if self.storage_backend == "memory":
                missing.append("STORAGE_BACKEND=postgres")
            if missing:
                raise ValueError(
                    "Missing required settings for production: "
                    + ", ".join(missing)
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment on every call.
    """
    return Settings()


# Singleton settings instance for easy import
settings = get_settings()
