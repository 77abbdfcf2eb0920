"""Configuration management for Image Sync."""
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Strategy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGE_SYNC_",
        extra="ignore",
    )

    # App settings
    app_name: str = "Image Sync"
    version: str = "0.1.0"
    app_host: str = "127.0.0.1"
    app_port: int = 8787

    # Sync folder and policy
    sync_folder: Optional[Path] = None
    strategy: Strategy = Strategy.LAST_WRITE_WINS

    # Remote catalog API
    remote_base_url: str = "http://localhost:3000/api"
    remote_timeout: float = 30.0
    page_size: int = 100
    max_retries: int = 3
    backoff_factor: float = 2.0

    # Engine
    max_concurrency: int = 4

    # Database
    db_path: Path = Path("image_sync.db")

    # Scheduler (0 disables periodic sync)
    sync_interval_minutes: int = 0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("sync_folder", mode="before")
    @classmethod
    def _blank_folder_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("page_size", "max_concurrency", "max_retries")
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Value must be at least 1.")
        return value

    @field_validator("sync_interval_minutes")
    @classmethod
    def _interval_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Sync interval cannot be negative.")
        return value


def get_settings() -> Settings:
    """Build settings from the environment."""
    return Settings()
