"""
Environment variable loading and parsing helpers.

- Loads .env from the project root when present.
- Typed readers raise ConfigError naming the offending variable.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from safe_suite.core.exceptions import ConfigError

# Project root: config is safe_suite/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_safe_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "", *fallbacks: str) -> str:
    """Return the first non-empty value among name and fallbacks, stripped."""
    for key in (name, *fallbacks):
        raw = (os.getenv(key) or "").strip()
        if raw:
            return raw
    return default


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = env_str(name).lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {raw!r}")


def env_list(name: str) -> list[str]:
    """Comma-separated list; empty entries dropped."""
    return [part.strip() for part in env_str(name).split(",") if part.strip()]
