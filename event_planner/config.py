"""
Event Planner — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from event_planner/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/planner.db"

    # Fallback zone for owners without one
    DEFAULT_TIMEZONE: str = "UTC"

    # Recurring-vs-recurring conflict checks stop this many days after the
    # overlap start when neither series has an end date
    CONFLICT_HORIZON_DAYS: int = 730

    LOG_LEVEL: str = "INFO"

    @field_validator("CONFLICT_HORIZON_DAYS", mode="before")
    @classmethod
    def parse_horizon(cls, v: str | int) -> int:
        days = int(v)
        if days < 1:
            raise ValueError("CONFLICT_HORIZON_DAYS must be at least 1")
        return days

    @field_validator("DEFAULT_TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/planner.db"),
        DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        CONFLICT_HORIZON_DAYS=os.getenv("CONFLICT_HORIZON_DAYS", "730"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by all other modules as:
#   from event_planner.config import settings
settings = _load_settings()
