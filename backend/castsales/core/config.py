"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Store-level values (tax rate,
service fee, business day cutoff) live in the system_settings table; the
values here are the fallbacks used when a store has none.
"""

from functools import lru_cache
from typing import Literal, Optional

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

    # Database
    database_url: str = "sqlite:///./castsales.db"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Rate limiting
    rate_limit_enabled: bool = True

    # Timezone used to derive business days from checkout timestamps
    timezone: str = "Asia/Tokyo"

    # ==========================================================================
    # Sales engine fallbacks (overridden per store via system_settings)
    # ==========================================================================
    default_tax_rate: float = 10.0  # percent
    default_service_fee_rate: float = 0.0  # percent
    business_day_cutoff_hour: int = 6

    # ==========================================================================
    # Recalculation job
    # ==========================================================================
    recalc_lock_ttl_seconds: int = 600
    recalc_schedule_interval_seconds: int = 900
    scheduler_enabled: bool = True
    scheduler_job_owner: Optional[str] = None

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("business_day_cutoff_hour")
    @classmethod
    def validate_cutoff_hour(cls, v: int) -> int:
        if v < 0 or v > 23:
            raise ValueError(f"business_day_cutoff_hour must be between 0 and 23, got {v}")
        return v

    @field_validator("default_tax_rate", "default_service_fee_rate")
    @classmethod
    def validate_rate(cls, v: float) -> float:
        if v < 0 or v > 100:
            raise ValueError(f"rate must be between 0 and 100, got {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
