"""
config/config.py

Purpose
-------
Centralized application settings for the platform API client.
- Normalizes environment variable names across canonical and legacy variants.
- Loads a local `.env` file via python-dotenv before the settings are built.
- Provides strong typing and safe defaults for the upstream connection.

Notes for Maintainers
---------------------
- Set `SETTINGS_SKIP_DOTENV=1` to ignore `.env` files (tests do this).
- In `development` a `.env` file is mandatory; in every other environment
  the variables are injected into the process environment directly and a
  stray `.env` file is simply loaded if present.

Examples
--------
# Bash:
export PI_API_KEY='my-platform-key'
export PLATFORM_API_MAX_RETRIES=5
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_PLATFORM_API_URL = "https://api.minepi.com"
_VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


# -----------------------------
# Helper functions
# -----------------------------
def _coalesce_env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable from *names*."""
    for name in names:
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return val
    return default


def _parse_int(value: Optional[str], *, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def _parse_float(value: Optional[str], *, default: float) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


def _current_app_env() -> str:
    return (_coalesce_env("APP_ENV", "NODE_ENV") or "production").strip().lower()


def load_environment() -> Optional[str]:
    """Load the nearest `.env` file into the process environment.

    Returns the path that was loaded, or ``None`` when nothing was loaded.

    Raises
    ------
    EnvironmentError
        If running in ``development`` and no `.env` file can be found.
    """

    if os.getenv("SETTINGS_SKIP_DOTENV") == "1":
        return None

    dotenv_path = find_dotenv(usecwd=True)
    if not dotenv_path:
        if _current_app_env() == "development":
            raise EnvironmentError(
                ".env file not found. A .env file is required in development."
            )
        return None

    load_dotenv(dotenv_path)
    logger.debug("Loaded environment from %s", dotenv_path)
    return dotenv_path


# -----------------------------
# Main Settings
# -----------------------------
class Settings(BaseSettings):
    # --- Runtime environment ---
    app_env: str = Field(default_factory=_current_app_env)
    log_level: str = Field(
        default_factory=lambda: _coalesce_env("LOG_LEVEL") or "INFO"
    )

    # --- Platform API (upstream) ---
    platform_api_url: str = Field(
        default_factory=lambda: _coalesce_env("PLATFORM_API_URL")
        or DEFAULT_PLATFORM_API_URL
    )
    pi_api_key: str = Field(
        default_factory=lambda: _coalesce_env("PI_API_KEY", "PLATFORM_API_KEY") or ""
    )
    platform_api_timeout: float = Field(
        default_factory=lambda: _parse_float(
            _coalesce_env("PLATFORM_API_TIMEOUT", "PLATFORM_API_TIMEOUT_SECONDS"),
            default=60.0,
        )
    )
    platform_api_max_retries: int = Field(
        default_factory=lambda: _parse_int(
            _coalesce_env("PLATFORM_API_MAX_RETRIES"), default=3
        )
    )

    class Config:
        case_sensitive = False

    @field_validator("app_env", mode="after")
    def _normalise_app_env(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_level", mode="after")
    def _normalise_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {v!r}")
        return level

    @field_validator("platform_api_timeout", mode="after")
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("platform_api_timeout must be positive")
        return v

    @field_validator("platform_api_max_retries", mode="after")
    def _non_negative_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("platform_api_max_retries must be >= 0")
        return v


load_environment()

# Singleton settings instance
settings = Settings()
