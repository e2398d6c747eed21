"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate settings and provide defaults for optional ones.
- Expose typed settings (API port, keys, DB URL, routing timeouts, etc.)
  for the core service, module services, and CLI.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field

from safe_suite.config.env import (
    env_bool,
    env_float,
    env_int,
    env_list,
    env_str,
    load_safe_env,
)

DEFAULT_DB_PATH = "safe.db"


@dataclass(frozen=True)
class Settings:
    """Typed view over SAFE_* environment variables."""

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_keys: frozenset[str] = field(default_factory=frozenset)
    """Accepted API keys. Empty disables authentication."""
    admin_api_keys: frozenset[str] = field(default_factory=frozenset)
    """Keys allowed to mutate the registry. Empty: any valid key."""
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    persist: bool = True
    modules_file: str | None = None
    builtin_modules: tuple[str, ...] = ("all",)
    module_timeout_sec: float = 10.0
    module_max_retries: int = 2
    retry_backoff_sec: float = 0.2
    failure_threshold: int = 3
    circuit_cooldown_sec: float = 30.0
    health_check_interval_sec: float = 30.0
    cors_origins: tuple[str, ...] = ()
    core_url: str | None = None
    core_api_key: str | None = None
    module_public_url: str | None = None
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_keys or self.admin_api_keys)

    @classmethod
    def from_env(cls) -> "Settings":
        load_safe_env()
        db_url = env_str("SAFE_DB_URL", "", "DATABASE_URL")
        if not db_url:
            db_url = f"sqlite:///{env_str('SAFE_DB_PATH', DEFAULT_DB_PATH)}"
        builtin = tuple(m.lower() for m in env_list("SAFE_BUILTIN_MODULES")) or ("all",)
        return cls(
            api_host=env_str("SAFE_API_HOST", "0.0.0.0", "API_HOST"),
            api_port=env_int("SAFE_API_PORT", env_int("API_PORT", 8000), minimum=1),
            api_keys=frozenset(env_list("SAFE_API_KEYS")),
            admin_api_keys=frozenset(env_list("SAFE_ADMIN_API_KEYS")),
            database_url=db_url,
            persist=env_bool("SAFE_PERSIST", True),
            modules_file=env_str("SAFE_MODULES_FILE") or None,
            builtin_modules=builtin,
            module_timeout_sec=env_float("SAFE_MODULE_TIMEOUT_SEC", 10.0, minimum=0.001),
            module_max_retries=env_int("SAFE_MODULE_MAX_RETRIES", 2, minimum=0),
            retry_backoff_sec=env_float("SAFE_RETRY_BACKOFF_SEC", 0.2, minimum=0.0),
            failure_threshold=env_int("SAFE_FAILURE_THRESHOLD", 3, minimum=1),
            circuit_cooldown_sec=env_float("SAFE_CIRCUIT_COOLDOWN_SEC", 30.0, minimum=0.0),
            health_check_interval_sec=env_float("SAFE_HEALTH_CHECK_INTERVAL_SEC", 30.0, minimum=0.0),
            cors_origins=tuple(env_list("SAFE_CORS_ORIGINS")),
            core_url=env_str("SAFE_CORE_URL") or None,
            core_api_key=env_str("SAFE_CORE_API_KEY") or None,
            module_public_url=env_str("SAFE_MODULE_PUBLIC_URL") or None,
            log_level=env_str("LOG_LEVEL", "INFO").upper(),
            log_format=env_str("LOG_FORMAT", "json").lower(),
        )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings.

    Built once from the environment (and .env) and cached; call
    reset_settings() after changing the environment.
    """
    return Settings.from_env()


def reset_settings() -> None:
    """Clear the cached settings. For tests and CLI overrides."""
    get_settings.cache_clear()
