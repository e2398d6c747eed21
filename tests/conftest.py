"""
Pytest fixtures for SAFE tests. Each test gets a temporary SQLite store and
settings that disable the background health monitor.
"""

from __future__ import annotations

import os
from dataclasses import replace

import pytest

from safe_suite.config import Settings, reset_settings
from safe_suite.safe_logging import configure_structlog


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop SAFE_* variables from the environment and reset cached settings."""
    for var in list(os.environ):
        if var.startswith("SAFE_") or var == "DATABASE_URL":
            monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def default_logging():
    """Put back the import-time logging setup; tests may point it at a captured stream."""
    yield
    configure_structlog()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'safe.db'}",
        health_check_interval_sec=0.0,
        retry_backoff_sec=0.0,
        module_max_retries=0,
    )


@pytest.fixture
def store(settings):
    from safe_suite.database import SafeStore

    s = SafeStore(settings.database_url)
    s.init_db()
    yield s
    s.dispose()


@pytest.fixture
def make_client(settings):
    """Factory: TestClient for the core app, with optional Settings overrides."""
    from fastapi.testclient import TestClient

    from safe_suite.api_server.server import create_app

    clients = []

    def _make(http_client=None, **overrides):
        app = create_app(replace(settings, **overrides), http_client=http_client)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """Core TestClient with auth disabled and all built-in modules."""
    return make_client()
