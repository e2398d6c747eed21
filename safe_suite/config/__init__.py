"""
Configuration management for SAFE.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for core and module services.
"""

from safe_suite.config.settings import Settings, get_settings, reset_settings  # noqa: F401

__all__ = ["Settings", "get_settings", "reset_settings"]
