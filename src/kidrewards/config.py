"""Configuration for the kidrewards engine, read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL_ENV = "KIDREWARDS_DATABASE_URL"
LOG_PATH_ENV = "KIDREWARDS_LOG_PATH"
CATALOG_PATH_ENV = "KIDREWARDS_CATALOG_PATH"
SQLITE_TIMEOUT_ENV = "KIDREWARDS_SQLITE_TIMEOUT"

DEFAULT_DATABASE_URL = "sqlite:///kidrewards.db"
DEFAULT_SQLITE_TIMEOUT = 30.0
RECENT_BADGE_LIMIT = 5
SUMMARY_PROGRESS_LIMIT = 5


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    log_path: Optional[Path] = None
    catalog_path: Optional[Path] = None
    sqlite_timeout: float = DEFAULT_SQLITE_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        log_path = env.get(LOG_PATH_ENV)
        catalog_path = env.get(CATALOG_PATH_ENV)
        raw_timeout = env.get(SQLITE_TIMEOUT_ENV)
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_SQLITE_TIMEOUT
        except ValueError as exc:
            raise ValueError(f"{SQLITE_TIMEOUT_ENV} must be a number of seconds, got {raw_timeout!r}.") from exc
        return cls(
            database_url=env.get(DATABASE_URL_ENV) or DEFAULT_DATABASE_URL,
            log_path=Path(log_path) if log_path else None,
            catalog_path=Path(catalog_path) if catalog_path else None,
            sqlite_timeout=timeout,
        )


__all__ = [
    "CATALOG_PATH_ENV",
    "DATABASE_URL_ENV",
    "DEFAULT_DATABASE_URL",
    "DEFAULT_SQLITE_TIMEOUT",
    "LOG_PATH_ENV",
    "RECENT_BADGE_LIMIT",
    "SQLITE_TIMEOUT_ENV",
    "SUMMARY_PROGRESS_LIMIT",
    "Settings",
]
