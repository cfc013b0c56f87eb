"""
HemoTrack Configuration Module

Centralized configuration management using Pydantic Settings.
Supports environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hemotrack.errors import ConfigurationError


class HemotrackSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="HEMOTRACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_json: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False


class AlertSettings(BaseSettings):
    """Thresholds for the admission alert feed."""

    model_config = SettingsConfigDict(
        env_prefix="HEMOTRACK_ALERT_",
        env_file=".env",
        extra="ignore",
    )

    long_stay_days: int = 14
    critical_stay_days: int = 30
    overdue_high_threshold: int = 5

    @model_validator(mode="after")
    def _check_thresholds(self) -> "AlertSettings":
        if self.long_stay_days < 0 or self.overdue_high_threshold < 0:
            raise ConfigurationError("alert thresholds must not be negative")
        if self.critical_stay_days <= self.long_stay_days:
            raise ConfigurationError(
                "critical_stay_days must be greater than long_stay_days",
                reasons=[
                    f"critical_stay_days={self.critical_stay_days} "
                    f"is not greater than long_stay_days={self.long_stay_days}"
                ],
            )
        return self


class ActivitySettings(BaseSettings):
    """Best-effort activity feed settings."""

    model_config = SettingsConfigDict(
        env_prefix="HEMOTRACK_ACTIVITY_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = True
    webhook_url: str | None = None
    timeout_seconds: float = 5.0


class Settings:
    """
    Aggregated settings container.

    Usage:
        from hemotrack.config import get_settings
        settings = get_settings()
        print(settings.alerts.long_stay_days)
    """

    def __init__(self):
        self.app = HemotrackSettings()
        self.alerts = AlertSettings()
        self.activity = ActivitySettings()

    @property
    def is_development(self) -> bool:
        return self.app.env == "development"

    @property
    def is_production(self) -> bool:
        return self.app.env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The application settings
    """
    return Settings()
