import logging
from pathlib import Path
from typing import Optional

import dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

dotenv.load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)

    OVERRIDE_LOGGING: int = logging.WARNING
    SUMMARY_LOGGING: int = logging.INFO

    TELEGRAM_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    DRY_RUN: bool = False

    PUSH_GATEWAY: Optional[str] = None

    TICK_SECONDS: float = 60

    # quiet periods are in seconds
    CRON_QUIET_PERIOD: int = 0
    AFTERBUILD_QUIET_PERIOD: int = 300

    OUTBOX_PATH: Optional[Path] = None

    @field_validator("OVERRIDE_LOGGING", "SUMMARY_LOGGING", mode="before")
    @classmethod
    def _level_from_name(cls, value):
        if isinstance(value, str) and not value.isdigit():
            level = logging.getLevelName(value.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level {value}")
            return level
        return value


SETTINGS = Settings()
