from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "cancheo-engine"
    database_url: str = "sqlite+aiosqlite:///./cancheo.db"

    # Bookings are stored as a local date plus an HH:MM slot
    booking_timezone: str = "America/Bogota"

    # Reminder scheduler
    reminder_worker_enabled: bool = True
    reminder_interval_seconds: int = 60

    # Loyalty tracker
    loyalty_worker_enabled: bool = True
    loyalty_default_goal: int = Field(default=7, ge=1)
    loyalty_sweep_interval_seconds: int = 15 * 60

    # Notification inbox
    inbox_capacity: int = Field(default=50, ge=1)
    toast_duration_seconds: float = 5.0

    # Session persistence
    remembered_session_path: str = ".cancheo/session.json"

    # Job scheduler
    engagement_job_scheduler_enabled: bool = True
    engagement_job_schedule_path: str = "config/schedules.toml"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
