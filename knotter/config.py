"""
Knotter: Centralized configuration.

Loads all settings from .env and validates them up front.
Rule and filter functions never read this module; the storage and service
layers fall back to it only when a caller passes no explicit value.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from knotter/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_MAX_DAYS = 3650


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/knotter.db"

    # Due-state window: days after today still counted as "soon"
    DUE_SOON_DAYS: int = 7

    # Cadence applied to new contacts when nothing else sets one
    DEFAULT_CADENCE_DAYS: int | None = None

    # IANA timezone name; empty → local machine time
    TIMEZONE: str = ""

    # Tag-driven cadence loops: "shortest" | "priority"
    LOOP_STRATEGY: str = "shortest"
    LOOP_DEFAULT_CADENCE_DAYS: int | None = None
    # "friends:90,family:30:5" → [("friends", 90, 0), ("family", 30, 5)]
    LOOP_RULES: list[tuple[str, int, int]] = []

    LOG_LEVEL: str = "INFO"

    @field_validator("DUE_SOON_DAYS", mode="before")
    @classmethod
    def parse_soon_days(cls, v: str | int) -> int:
        days = int(v)
        if not 0 <= days <= _MAX_DAYS:
            raise ValueError(f"DUE_SOON_DAYS must be between 0 and {_MAX_DAYS}, got {days}")
        return days

    @field_validator("DEFAULT_CADENCE_DAYS", "LOOP_DEFAULT_CADENCE_DAYS", mode="before")
    @classmethod
    def parse_cadence(cls, v: str | int | None) -> int | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        days = int(v)
        if not 1 <= days <= _MAX_DAYS:
            raise ValueError(f"cadence must be between 1 and {_MAX_DAYS}, got {days}")
        return days

    @field_validator("LOOP_STRATEGY", mode="before")
    @classmethod
    def parse_strategy(cls, v: str) -> str:
        value = (v or "shortest").strip().lower()
        if value not in ("shortest", "priority"):
            raise ValueError(f"LOOP_STRATEGY must be 'shortest' or 'priority', got {v!r}")
        return value

    @field_validator("LOOP_RULES", mode="before")
    @classmethod
    def parse_loop_rules(
        cls, v: str | list[tuple[str, int, int]],
    ) -> list[tuple[str, int, int]]:
        if isinstance(v, list):
            return v
        rules: list[tuple[str, int, int]] = []
        if not isinstance(v, str) or not v.strip():
            return rules
        for item in v.split(","):
            item = item.strip()
            if not item:
                continue
            parts = item.split(":")
            if len(parts) not in (2, 3):
                raise ValueError(f"invalid loop rule {item!r}: expected tag:cadence[:priority]")
            priority = int(parts[2]) if len(parts) == 3 else 0
            rules.append((parts[0].strip(), int(parts[1]), priority))
        return rules


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/knotter.db"),
        DUE_SOON_DAYS=os.getenv("DUE_SOON_DAYS", "7"),
        DEFAULT_CADENCE_DAYS=os.getenv("DEFAULT_CADENCE_DAYS", ""),
        TIMEZONE=os.getenv("TIMEZONE", ""),
        LOOP_STRATEGY=os.getenv("LOOP_STRATEGY", "shortest"),
        LOOP_DEFAULT_CADENCE_DAYS=os.getenv("LOOP_DEFAULT_CADENCE_DAYS", ""),
        LOOP_RULES=os.getenv("LOOP_RULES", ""),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by the storage and service layers as:
#   from knotter.config import settings
settings = _load_settings()
