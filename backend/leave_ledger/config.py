from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leave Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leave_ledger:leave_ledger@db:5432/leave_ledger"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]
    log_level: str = "INFO"

    # First calendar month of the fiscal year (1 = January).
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    ledger_append_max_retries: int = Field(default=3, ge=1)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
