"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
Per-shop credentials (VTEX account, TikTok shop cipher, payment settings) are
not configured here; they live in the ``shops`` table.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_dir: str = "logs"
    environment: str = "development"

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./bridge.db"

    # Redis Configuration (optional, used for the invoice poll lock)
    redis_url: Optional[str] = None

    # TikTok Shop API Configuration
    tiktok_app_key: Optional[str] = None
    tiktok_app_secret: Optional[str] = None
    tiktok_base_open: str = "https://open-api.tiktokglobalshop.com"
    verify_webhook_signature: bool = True

    # Public surface
    public_base_url: Optional[str] = None
    middleware_api_key: Optional[str] = None

    # Outbound HTTP
    request_timeout_ms: int = Field(10000, gt=0)

    # Order pipeline
    tts_label_trigger: Literal["immediate", "invoice"] = "immediate"
    dispatch_settle_delay_seconds: float = Field(15.0, ge=0)
    allow_synthetic_document: bool = True
    shop_config_cache_ttl_seconds: float = Field(60.0, ge=0)

    # Invoice polling
    vtex_invoice_poll_enabled: bool = True
    vtex_invoice_poll_batch: int = Field(50, ge=1, le=500)
    vtex_invoice_poll_max_age_days: int = Field(30, ge=1, le=365)
    vtex_invoice_poll_interval_minutes: int = Field(5, ge=1)

    # Monitoring
    sentry_dsn: Optional[str] = None
    sentry_traces_sample_rate: float = 0.0

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0


# Create a global settings instance
settings = Settings()
