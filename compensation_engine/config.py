"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./compensation_engine.db"

    # Service
    service_name: str = "compensation-engine"
    log_level: str = "INFO"

    # Calendar days (claim gate, self-income counters) and cron triggers share one timezone
    timezone: str = "Asia/Kolkata"

    # Scheduler
    scheduler_enabled: bool = True
    daily_snapshot_cron: str = "0 0 * * *"  # 00:00 every day
    weekly_recalculation_cron: str = "0 1 * * sun"  # 01:00 every Sunday
    self_income_cron: str = "0 12 * * *"  # 12:00 every day
    outbox_interval_seconds: int = 60
    outbox_max_attempts: int = 5

    # Compensation plan
    plan_config_path: Optional[str] = None  # JSON file overriding the built-in tier tables
    first_deposit_bonus_percentage: Decimal = Decimal("10")
    referral_bonus_percentage: Decimal = Decimal("10")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
