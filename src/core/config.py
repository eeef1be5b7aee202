"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: PostgresDsn = Field(
        default=...,
        description="PostgreSQL connection URL with asyncpg driver",
    )
    database_pool_size: int = Field(
        default=5,
        description="Persistent connections kept in the pool",
    )
    database_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed beyond the pool size",
    )

    # Redis
    redis_url: RedisDsn = Field(
        default=...,
        description="Redis connection URL",
    )

    # Tokens
    jwt_secret: str = Field(
        default=...,
        description="Secret used to sign access and emergency tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        description="Lifetime of actor access tokens in minutes",
    )
    emergency_token_expire_hours: int = Field(
        default=24,
        description="Lifetime of emergency access tokens in hours",
    )

    # Consent ledger
    consent_default_duration_days: int = Field(
        default=30,
        description="Default grant duration when a patient approves a request",
    )
    trusted_auto_approval_days: int = Field(
        default=30,
        description="Grant duration for requests auto-approved via the trust list",
    )
    duplicate_request_window_minutes: int = Field(
        default=60,
        description="Window in which a second pending request for the same pair is refused",
    )
    max_consent_duration_days: int = Field(
        default=365,
        description="Upper bound a patient may choose for a grant",
    )

    # Doctor verification
    verification_required_documents: str = Field(
        default="GOVERNMENT_ID,MEDICAL_CERTIFICATE",
        description="Comma-separated document types required before approval",
    )
    verification_max_document_size: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        description="Maximum size of a verification document in bytes",
    )
    verification_allowed_mime_types: str = Field(
        default="image/jpeg,image/png,application/pdf",
        description="Comma-separated MIME types accepted for verification documents",
    )

    # Audit trail
    audit_page_size_max: int = Field(
        default=100,
        description="Maximum page size for audit queries",
    )

    # Admin dashboard
    dashboard_rejection_threshold: int = Field(
        default=3,
        description="Rejected requests after which a doctor is flagged on the dashboard",
    )

    # Advisory usage metering
    advisory_daily_limit: int = Field(
        default=50,
        description="Advisory analysis calls allowed per actor per day",
    )

    # Application
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment",
    )
    app_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    app_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Server
    app_host: str = Field(
        default="0.0.0.0",
        description="Interface the API server binds to",
    )
    app_port: int = Field(
        default=8000,
        description="Port the API server listens on",
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def required_document_types(self) -> set[str]:
        """Document types a doctor must have on file before approval."""
        return {
            doc_type.strip().upper()
            for doc_type in self.verification_required_documents.split(",")
            if doc_type.strip()
        }

    @property
    def allowed_mime_types(self) -> set[str]:
        """MIME types accepted for verification uploads."""
        return {
            mime.strip().lower()
            for mime in self.verification_allowed_mime_types.split(",")
            if mime.strip()
        }

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    return Settings()
