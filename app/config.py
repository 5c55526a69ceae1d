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
    app_name: str = "ParkSpot"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 3045

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "parkspot"
    postgres_password: str = Field(default="parkspot_secret")
    postgres_db: str = "parkspot"
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @computed_field
    @property
    def database_url(self) -> str:
        """Async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # JWT Authentication
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Booking lifecycle
    booking_hold_minutes: int = 10
    booking_sweep_interval_seconds: int = 60
    booking_sweep_batch_size: int = 500
    booking_max_hours: int = 24 * 31

    # Payment Gateways
    payment_gateway: Literal["manual", "stripe"] = "manual"
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    checkout_success_url: str = "http://localhost:3000/payments/success?ref={CHECKOUT_SESSION_ID}"
    checkout_cancel_url: str = "http://localhost:3000/payments/cancel?ref={CHECKOUT_SESSION_ID}"
    default_currency: str = "INR"

    # Realtime notifications
    notification_send_timeout_seconds: float = 5.0

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
