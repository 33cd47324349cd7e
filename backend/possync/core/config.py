"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. The stored PosConfiguration row
holds the per-installation credentials; the values here are process-level
defaults and fallbacks.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to relative path for Docker, override via env for local dev
    database_url: str = "sqlite:///./data/possync.db"

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ==========================================================================
    # POS (Tuu / Haulmer) integration
    # ==========================================================================
    # Fallback API key used when the stored configuration has none
    pos_api_key: Optional[str] = None
    pos_base_url: str = "https://integrations.payment.haulmer.com"
    pos_request_timeout: float = 30.0  # seconds per upstream call

    # Upstream rejects ranges longer than 30 days
    pos_chunk_max_days: int = 30
    pos_default_lookback_days: int = 7

    # Pagination - upstream hard cap is 20 records per page
    pos_page_size: int = 20
    pos_max_pages: int = 50
    pos_page_delay_ms: int = 100

    # Daily scheduled sync (local wall-clock time)
    pos_scheduler_enabled: bool = True
    pos_sync_hour: int = 2
    pos_sync_minute: int = 0
    timezone: str = "America/Santiago"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    pos_sync_rate_limit: str = "10/minute"

    @field_validator("pos_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if not 1 <= v <= 20:
            raise ValueError("POS_PAGE_SIZE must be between 1 and 20 (upstream hard cap)")
        return v

    @field_validator("pos_chunk_max_days", "pos_max_pages")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("pos_sync_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("POS_SYNC_HOUR must be between 0 and 23")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def pos_page_delay_seconds(self) -> float:
        return self.pos_page_delay_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
