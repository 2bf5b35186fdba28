"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "CampusVisit"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "campusvisit"
    postgres_password: str = Field(default="campusvisit_secret")
    postgres_db: str = "campusvisit"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None  # e.g. sqlite+aiosqlite:// for tests

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Identity provider tokens
    identity_jwt_key: str = Field(default="your-identity-provider-key-change-in-production")
    identity_jwt_algorithms: List[str] = ["HS256"]
    identity_jwt_audience: Optional[str] = None
    identity_jwt_issuer: Optional[str] = None

    # Bookings
    booking_id_prefix: str = "CV"

    # Payment gateway (Razorpay)
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    razorpay_currency: str = "INR"
    razorpay_timeout_seconds: float = 15.0
    razorpay_reconcile_payments: bool = False

    # AWS S3
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "ap-south-1"
    s3_bucket_name: str = "campusvisit-receipts"
    s3_endpoint_url: Optional[str] = None  # For MinIO in dev
    s3_public_read: bool = True
    storage_timeout_seconds: float = 20.0
    receipt_url_expiry_seconds: int = 3600

    # Receipts
    receipt_render_timeout_seconds: float = 10.0
    # TrueType files; defaults are the Vera faces bundled with reportlab
    receipt_font_path: Optional[str] = None
    receipt_bold_font_path: Optional[str] = None
    receipt_footer_text: str = (
        "Please carry this receipt (printed or on your phone) and a valid photo ID. "
        "Arrive at least 15 minutes before your visit time."
    )

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = None
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    email_from_address: str = "noreply@campusvisit.in"
    email_from_name: str = "CampusVisit"
    email_timeout_seconds: float = 15.0

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
