"""
Module registry package — descriptors, registry state, discovery, health monitoring.

The registry maps module name to descriptor and runtime state. The router
reads it to dispatch calls; the health monitor and router write back health.
"""

from safe_suite.registry.models import (
    MODULE_NAME_PATTERN,
    ModuleDescriptor,
    ModuleEntry,
    ModuleStatus,
    Transport,
)
from safe_suite.registry.registry import ModuleRegistry

__all__ = [
    "MODULE_NAME_PATTERN",
    "ModuleDescriptor",
    "ModuleEntry",
    "ModuleRegistry",
    "ModuleStatus",
    "Transport",
]
