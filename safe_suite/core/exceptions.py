"""
Application-level exceptions.

Every error carries a stable machine-readable code and the HTTP status the
core service answers with, so module failures look the same to clients
whether the module ran in-process or behind HTTP.
"""

from __future__ import annotations

from typing import Any


class SafeError(Exception):
    """Base class for all SAFE errors."""

    code = "safe_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class InternalError(SafeError):
    """Unexpected failure outside the error hierarchy; rendered without internals."""

    code = "internal_error"


class ConfigError(SafeError):
    code = "config_error"


class AuthenticationError(SafeError):
    code = "unauthorized"
    status_code = 401


class PermissionDeniedError(SafeError):
    code = "forbidden"
    status_code = 403


class UnknownModuleError(SafeError):
    code = "module_not_found"
    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown module: {name}", details={"module": name})
        self.name = name


class OperationNotSupportedError(SafeError):
    code = "operation_not_found"
    status_code = 404

    def __init__(self, module: str, operation: str) -> None:
        super().__init__(
            f"Module {module} does not support operation {operation}",
            details={"module": module, "operation": operation},
        )
        self.module = module
        self.operation = operation


class RegistrationError(SafeError):
    code = "invalid_registration"
    status_code = 400


class ModuleConflictError(SafeError):
    code = "module_conflict"
    status_code = 409


class ModuleInputError(SafeError):
    """Payload rejected by the module's request model or semantic checks."""

    code = "invalid_input"
    status_code = 422

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out


class ModuleExecutionError(SafeError):
    code = "module_error"
    status_code = 500


class ModuleUnavailableError(SafeError):
    code = "module_unavailable"
    status_code = 503


class ModuleTimeoutError(SafeError):
    code = "module_timeout"
    status_code = 504


# Failures that count toward a module's circuit breaker.
MODULE_FAILURES = (ModuleExecutionError, ModuleUnavailableError, ModuleTimeoutError)
