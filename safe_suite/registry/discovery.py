"""
Module discovery at core startup.

Sources, in order (later ones override earlier http registrations, never a
built-in local module):
1. Built-in modules selected by SAFE_BUILTIN_MODULES (in-process).
2. SAFE_MODULES_FILE: JSON list of descriptors, or {"modules": [...]}.
3. Registrations persisted in the store by POST /modules.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from safe_suite.config import Settings
from safe_suite.core.exceptions import ConfigError, ModuleConflictError
from safe_suite.modules import load_builtin_modules
from safe_suite.registry.models import ModuleDescriptor, Transport
from safe_suite.registry.registry import ModuleRegistry
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)


def load_modules_file(path: str | Path) -> list[ModuleDescriptor]:
    """Parse a modules file. Raises ConfigError on unreadable or invalid content."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"SAFE_MODULES_FILE not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"SAFE_MODULES_FILE unreadable ({path}): {e}") from e
    items = raw.get("modules") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ConfigError(f"SAFE_MODULES_FILE must hold a list of modules: {path}")
    descriptors = []
    for i, item in enumerate(items):
        try:
            descriptor = ModuleDescriptor.model_validate(item)
        except ValidationError as e:
            raise ConfigError(f"SAFE_MODULES_FILE entry {i} is invalid: {e.errors(include_url=False)}") from e
        if descriptor.transport is not Transport.HTTP:
            raise ConfigError(f"SAFE_MODULES_FILE entry {i} ({descriptor.name}) must use http transport")
        descriptors.append(descriptor)
    return descriptors


def _register_remote(registry: ModuleRegistry, descriptor: ModuleDescriptor, source: str) -> bool:
    try:
        registry.register(descriptor)
    except ModuleConflictError:
        logger.warning("module_discovery_conflict", module=descriptor.name, source=source)
        return False
    return True


def discover_modules(registry: ModuleRegistry, settings: Settings, store: Any = None) -> dict[str, int]:
    """Populate the registry; returns a count per source."""
    counts = {"builtin": 0, "file": 0, "store": 0}
    for module in load_builtin_modules(settings.builtin_modules):
        registry.register(module.describe(), module=module)
        counts["builtin"] += 1

    if settings.modules_file:
        for descriptor in load_modules_file(settings.modules_file):
            counts["file"] += int(_register_remote(registry, descriptor, "file"))

    if store is not None:
        for row in store.load_modules():
            try:
                descriptor = ModuleDescriptor.model_validate(row)
            except ValidationError as e:
                logger.warning("module_discovery_invalid_row", module=row.get("name"), error=str(e))
                continue
            counts["store"] += int(_register_remote(registry, descriptor, "store"))

    logger.info("module_discovery_completed", **counts, total=len(registry))
    return counts
