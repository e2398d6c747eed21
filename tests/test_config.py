"""
Pytest tests for environment-driven settings.
"""

from __future__ import annotations

import pytest

from safe_suite.config import Settings, get_settings, reset_settings
from safe_suite.core.exceptions import ConfigError


def test_defaults():
    s = Settings.from_env()
    assert s.api_port == 8000
    assert s.database_url == "sqlite:///safe.db"
    assert s.builtin_modules == ("all",)
    assert s.persist is True
    assert s.auth_enabled is False


def test_lists_bools_and_numbers(monkeypatch):
    monkeypatch.setenv("SAFE_API_KEYS", "k1, k2,,")
    monkeypatch.setenv("SAFE_ADMIN_API_KEYS", "root")
    monkeypatch.setenv("SAFE_PERSIST", "no")
    monkeypatch.setenv("SAFE_BUILTIN_MODULES", "Bias,fraud")
    monkeypatch.setenv("SAFE_MODULE_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("SAFE_CORS_ORIGINS", "http://localhost:3000")
    s = Settings.from_env()
    assert s.api_keys == frozenset({"k1", "k2"})
    assert s.admin_api_keys == frozenset({"root"})
    assert s.persist is False
    assert s.builtin_modules == ("bias", "fraud")
    assert s.module_timeout_sec == 2.5
    assert s.cors_origins == ("http://localhost:3000",)
    assert s.auth_enabled is True


def test_database_url_fallbacks(monkeypatch):
    monkeypatch.setenv("SAFE_DB_PATH", "/tmp/x.db")
    assert Settings.from_env().database_url == "sqlite:////tmp/x.db"
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/safe")
    assert Settings.from_env().database_url == "postgresql://u:p@db/safe"
    monkeypatch.setenv("SAFE_DB_URL", "sqlite:///other.db")
    assert Settings.from_env().database_url == "sqlite:///other.db"


@pytest.mark.parametrize(
    "var,value",
    [
        ("SAFE_API_PORT", "eighty"),
        ("SAFE_API_PORT", "0"),
        ("SAFE_PERSIST", "maybe"),
        ("SAFE_MODULE_MAX_RETRIES", "-1"),
        ("SAFE_FAILURE_THRESHOLD", "0"),
    ],
)
def test_invalid_values_raise_config_error(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ConfigError, match=var):
        Settings.from_env()


def test_get_settings_is_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("SAFE_API_PORT", "9100")
    assert get_settings() is first
    reset_settings()
    assert get_settings().api_port == 9100
