"""
Configuration management for the Orders Service.

Loads settings from .env via pydantic-settings.

Notes:
    - Remote calls (products, payments) are bounded by rpc_timeout_seconds and
      retried with exponential backoff up to rpc_max_retries extra attempts.
    - validate_production_settings() refuses unsafe settings in production.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/orders.db"
    database_echo: bool = False

    # ── Remote services (request/reply) ─────────────────────────────
    products_service_url: str = "http://localhost:3001"
    payments_service_url: str = "http://localhost:3003"
    rpc_timeout_seconds: float = 5.0
    rpc_max_retries: int = 2            # extra attempts after the first
    rpc_backoff_seconds: float = 0.2    # doubled on every retry

    # ── Payments ────────────────────────────────────────────────────
    payment_currency: str = "usd"
    payment_webhook_secret: str = ""

    # ── Paid-notification worker ────────────────────────────────────
    notification_max_attempts: int = 3
    notification_retry_seconds: float = 1.0

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.payment_webhook_secret:
                raise ValueError(
                    "PAYMENT_WEBHOOK_SECRET must be set in production. "
                    "It is used to verify paid-order notifications."
                )
            if self.database_url.startswith("sqlite"):
                raise ValueError(
                    "DATABASE_URL must point to a server database in production, not SQLite."
                )
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if not self.payment_webhook_secret:
                warnings.append("PAYMENT_WEBHOOK_SECRET not set (paid notifications will be rejected)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
