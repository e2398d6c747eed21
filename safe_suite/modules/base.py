"""
Common interface every SAFE module implements.

A module exposes named operations; each operation pairs a pydantic request
model with a handler. run() validates the payload, calls the handler, and
maps failures onto the shared error hierarchy so the core service and the
standalone module service report them identically.

Lifecycle
---------
1. ``__init__`` – lightweight, no I/O.
2. ``operations()`` – static table of operation name → OperationSpec.
3. ``run(operation, payload)`` – validate and execute one call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from safe_suite.core.exceptions import (
    ModuleExecutionError,
    ModuleInputError,
    OperationNotSupportedError,
    SafeError,
)
from safe_suite.registry.models import ModuleDescriptor, Transport
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)


class ModuleRequest(BaseModel):
    """Base for operation payloads. NaN and +/-Infinity are rejected as input errors."""

    model_config = ConfigDict(allow_inf_nan=False)


@dataclass(frozen=True)
class OperationSpec:
    """One callable operation: request model, handler, and a short description."""

    request_model: type[BaseModel]
    handler: Callable[[Any], dict[str, Any]]
    description: str = ""


def validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    """JSON-safe pydantic error list (no URLs, contexts, or echoed input)."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors(include_url=False, include_context=False, include_input=False)
    ]


class SafetyModule(ABC):
    """Contract every AI-safety module must fulfil."""

    name: str = ""
    description: str = ""
    version: str = "0.1.0"
    tags: tuple[str, ...] = ()

    @abstractmethod
    def operations(self) -> dict[str, OperationSpec]:
        """Return operation name → OperationSpec."""

    def operation_names(self) -> list[str]:
        return list(self.operations())

    def run(self, operation: str, payload: Any) -> dict[str, Any]:
        ops = self.operations()
        spec = ops.get(operation)
        if spec is None:
            raise OperationNotSupportedError(self.name, operation)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ModuleInputError("Payload must be a JSON object")
        try:
            request = spec.request_model.model_validate(payload)
        except ValidationError as e:
            raise ModuleInputError(
                f"Invalid payload for {self.name}.{operation}",
                errors=validation_errors(e),
            ) from e
        try:
            return spec.handler(request)
        except SafeError:
            raise
        except ValueError as e:
            raise ModuleInputError(str(e)) from e
        except Exception as e:
            logger.exception("module_operation_failed", module=self.name, operation=operation, error=str(e))
            raise ModuleExecutionError(
                f"{self.name}.{operation} failed: {type(e).__name__}",
                details={"module": self.name, "operation": operation},
            ) from e

    def health(self) -> dict[str, Any]:
        return {"status": "ok", "module": self.name, "version": self.version}

    def describe(self, *, transport: Transport = Transport.LOCAL, base_url: str | None = None) -> ModuleDescriptor:
        ops = self.operations()
        return ModuleDescriptor(
            name=self.name,
            description=self.description,
            version=self.version,
            transport=transport,
            base_url=base_url,
            operations=list(ops),
            tags=list(self.tags),
            schemas={name: spec.request_model.model_json_schema() for name, spec in ops.items()},
        )
