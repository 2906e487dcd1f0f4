# src/rota/config.py
"""
Centralized configuration for rota.
- Loads environment variables (via .env in dev) using Pydantic BaseSettings
- Provides typed settings with sane defaults
- Exposes a singleton `settings` for convenience, plus `get_settings()` for DI

Every field can be overridden with a `ROTA_` prefixed environment variable,
e.g. `ROTA_MAX_OCCURRENCES=500` or `ROTA_LOG_JSON=false`.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ROOT = Path(__file__).resolve().parents[2]  # repo root (…/src/rota/ → …/)
DEFAULT_DATA_DIR = ROOT / "data"


class Settings(BaseSettings):
    """Typed, validated app configuration.

    Usage:
        from rota.config import settings
        db_path = settings.db_path
    """

    model_config = SettingsConfigDict(
        env_prefix="ROTA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- runtime environment ---
    env: Literal["local", "test", "prod"] = Field(default="local", description="Runtime environment")

    # --- database ---
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    db_filename: str = Field(default="rota.db")

    # --- series engine ---
    max_occurrences: int = Field(default=300, ge=1, description="Hard cap on occurrences per generation pass")
    default_recurrence_months: int = Field(default=3, ge=1, description="Recurrence end used when an edit leaves it before the start")
    window_months: int = Field(default=3, ge=1, description="Size of the default working-set window")

    # --- logging ---
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Emit logs as JSON if True, pretty if False")
    log_dir: Path = Field(default=DEFAULT_DATA_DIR / "logs")
    log_file: str = Field(default="rota.log")
    log_max_bytes: int = Field(default=2 * 1024 * 1024)  # 2MB
    log_backup_count: int = Field(default=3)
    redact_notes_in_logs: bool = Field(default=True)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.log_file

    @field_validator("data_dir", "log_dir")
    @classmethod
    def _expand_user(cls, v: Path) -> Path:
        return Path(os.path.expanduser(str(v)))

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)


# Singleton-ish settings instance for convenience
settings = Settings()


def get_settings() -> Settings:
    """Factory to retrieve settings (handy for dependency injection in tests)."""
    return settings
