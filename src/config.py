"""
JIN Routines — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/routines.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    TIMEZONE: str = "Asia/Seoul"

    # Notification popups
    NOTIFICATION_DWELL_MS: int = 5000
    NOTIFICATION_EXIT_MS: int = 300
    DUE_CHECK_INTERVAL_SECONDS: int = 60

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("NOTIFICATION_DWELL_MS", "DUE_CHECK_INTERVAL_SECONDS", mode="before")
    @classmethod
    def parse_positive(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("NOTIFICATION_EXIT_MS", mode="before")
    @classmethod
    def parse_non_negative(cls, v: str | int) -> int:
        value = int(v)
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @property
    def dwell_seconds(self) -> float:
        return self.NOTIFICATION_DWELL_MS / 1000

    @property
    def exit_grace_seconds(self) -> float:
        return self.NOTIFICATION_EXIT_MS / 1000


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    try:
        return Settings(
            TELEGRAM_BOT_TOKEN=token,
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/routines.db"),
            ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
            TIMEZONE=os.getenv("TIMEZONE", "Asia/Seoul"),
            NOTIFICATION_DWELL_MS=os.getenv("NOTIFICATION_DWELL_MS", "5000"),
            NOTIFICATION_EXIT_MS=os.getenv("NOTIFICATION_EXIT_MS", "300"),
            DUE_CHECK_INTERVAL_SECONDS=os.getenv("DUE_CHECK_INTERVAL_SECONDS", "60"),
        )
    except ValidationError as exc:
        print(f"ERROR: invalid settings in .env:\n{exc}", file=sys.stderr)
        sys.exit(1)


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
