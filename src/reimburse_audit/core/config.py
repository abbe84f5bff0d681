from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    database_url: str = "sqlite:///./reimburse_audit.db"
    database_echo: bool = False

    duplicate_lookback_days: int = 30
    amount_threshold: Decimal = Decimal("300.00")
    receipt_max_age_days: int = 30

    pending_watch_days: int = 3
    pending_stale_days: int = 8


settings = Settings()
