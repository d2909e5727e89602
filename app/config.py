"""
Deployment configuration for the medication reminder services
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


PLACEHOLDER_ACCESS_TOKEN = "YOUR_LINE_CHANNEL_ACCESS_TOKEN"


def is_dry_run_token(token: Optional[str]) -> bool:
    """No usable access token: deliveries are accepted without a network call."""
    token = (token or "").strip()
    return not token or token == PLACEHOLDER_ACCESS_TOKEN


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True)

    APP_NAME: str = "medreminder"

    # Schedule store
    DATABASE_URL: str = "sqlite:///./medreminder.db"
    DATABASE_ECHO: bool = False
    STORE_TIMEOUT_SECONDS: float = 10.0

    # Reminder passes
    REMINDER_TIMEZONE: str = "Asia/Tokyo"
    GRACE_MINUTES: int = 30
    TOLERANCE_MINUTES: int = 5

    # Chat gateway
    LINE_CHANNEL_ACCESS_TOKEN: Optional[str] = None
    LINE_PUSH_URL: str = "https://api.line.me/v2/bot/message/push"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Reports
    REPORTS_DIR: str = "reports"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def reminder_tz(self) -> ZoneInfo:
        return ZoneInfo(self.REMINDER_TIMEZONE)

    @property
    def gateway_dry_run(self) -> bool:
        return is_dry_run_token(self.LINE_CHANNEL_ACCESS_TOKEN)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
