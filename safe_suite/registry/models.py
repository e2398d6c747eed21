"""
Registry data models: module descriptor and runtime state.

ModuleDescriptor is what a module declares (name, transport, operations);
it doubles as the POST /modules request body. ModuleEntry adds the runtime
state the core tracks per module (health status, failures, last seen).
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

MODULE_NAME_PATTERN = r"^[a-z][a-z0-9_-]{1,63}$"
_OPERATION_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")


class Transport(str, Enum):
    LOCAL = "local"
    HTTP = "http"


class ModuleStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"


class ModuleDescriptor(BaseModel):
    """Static description of a module as registered with the core."""

    name: str = Field(..., pattern=MODULE_NAME_PATTERN, description="Module slug, e.g. 'adversarial'")
    description: str = Field("", max_length=1024)
    version: str = Field("0.0.0", max_length=64)
    transport: Transport = Field(Transport.HTTP, description="local (in-process) or http")
    base_url: str | None = Field(None, max_length=512, description="Required for http modules")
    operations: list[str] = Field(..., min_length=1, description="Operation names the module accepts")
    tags: list[str] = Field(default_factory=list)
    enabled: bool = True
    schemas: dict[str, Any] = Field(default_factory=dict, description="JSON schema per operation (optional)")

    @field_validator("operations")
    @classmethod
    def _check_operations(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("operations must be unique")
        for op in value:
            if not _OPERATION_PATTERN.match(op):
                raise ValueError(f"invalid operation name: {op!r}")
        return value

    @model_validator(mode="after")
    def _check_transport(self) -> "ModuleDescriptor":
        if self.transport is Transport.HTTP:
            if not self.base_url:
                raise ValueError("base_url is required for http modules")
            if not self.base_url.startswith(("http://", "https://")):
                raise ValueError("base_url must start with http:// or https://")
            self.base_url = self.base_url.rstrip("/")
        elif self.base_url:
            raise ValueError("local modules must not set base_url")
        return self


@dataclass
class ModuleEntry:
    """Registry row: descriptor plus runtime health state."""

    descriptor: ModuleDescriptor
    module: Any = None
    """SafetyModule instance for local transport; None for http."""
    status: ModuleStatus = ModuleStatus.UNKNOWN
    consecutive_failures: int = 0
    last_failure_at: float | None = None
    trial_started_at: float | None = None
    """Set while the single half-open call after a cooldown is in flight."""
    last_seen: float | None = None
    last_error: str | None = None
    registered_at: float = field(default_factory=time.time)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def is_local(self) -> bool:
        return self.descriptor.transport is Transport.LOCAL

    def to_dict(self) -> dict[str, Any]:
        out = self.descriptor.model_dump(mode="json", exclude={"schemas"})
        out.update(
            {
                "status": (ModuleStatus.DISABLED if not self.descriptor.enabled else self.status).value,
                "consecutive_failures": self.consecutive_failures,
                "last_seen": self.last_seen,
                "last_error": self.last_error,
                "registered_at": self.registered_at,
            }
        )
        return out
