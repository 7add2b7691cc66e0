# src/cron_keeper/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the CLI / composition root.
- Nothing in the core reads settings implicitly: the history location is
  always handed to the store explicitly, so several keepers can coexist.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "CRON_KEEPER"

STORE_BACKENDS = ("file", "sqlite", "memory")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load a local .env without overriding variables already set."""
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = _env(name, default).strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_to_file: bool

    # ---- Scheduling ----
    timezone: str

    # ---- Local data paths ----
    data_dir: Path
    store_backend: str
    history_path: Path
    sqlite_path: Path

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv()

        app_name = _env(_k("APP_NAME"), "cron-keeper").strip() or "cron-keeper"
        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"
        log_to_file = _env_bool(_k("LOG_TO_FILE"), True)

        timezone = _env(_k("TIMEZONE"), "UTC").strip() or "UTC"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/cron_keeper"))
        store_backend = _env_choice(_k("STORE"), STORE_BACKENDS, "file")
        history_path = _env_path(_k("HISTORY_PATH"), data_dir / "history.log")
        sqlite_path = _env_path(_k("SQLITE_PATH"), data_dir / "history.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_to_file=log_to_file,
            timezone=timezone,
            data_dir=data_dir,
            store_backend=store_backend,
            history_path=history_path,
            sqlite_path=sqlite_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load settings from the environment on first use and cache them."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
