"""
Router — the core's dispatch path for one operation call.

Order of checks: module exists, module enabled, operation declared, circuit
closed. Local modules run in-process; http modules are called through
HttpModuleClient. Every call is logged and, when a store is configured,
appended to the request log.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any

from safe_suite.core.exceptions import (
    MODULE_FAILURES,
    ModuleInputError,
    ModuleUnavailableError,
    OperationNotSupportedError,
    SafeError,
)
from safe_suite.registry import ModuleRegistry
from safe_suite.routing.client import HttpModuleClient
from safe_suite.safe_logging import bind_request, get_logger

logger = get_logger(__name__)


@dataclass
class InvocationResult:
    module: str
    operation: str
    request_id: str
    duration_ms: float
    result: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "operation": self.operation,
            "request_id": self.request_id,
            "duration_ms": self.duration_ms,
            "result": self.result,
        }


class Router:
    def __init__(self, registry: ModuleRegistry, http_client: HttpModuleClient, store: Any = None) -> None:
        self.registry = registry
        self.http_client = http_client
        self.store = store

    def invoke(
        self,
        module: str,
        operation: str,
        payload: Any,
        *,
        request_id: str | None = None,
        client: str | None = None,
    ) -> InvocationResult:
        request_id = request_id or uuid.uuid4().hex
        log = bind_request(request_id, __name__, module=module, operation=operation)
        start = time.perf_counter()
        try:
            result = self._dispatch(module, operation, payload, request_id)
        except SafeError as e:
            duration_ms = (time.perf_counter() - start) * 1000.0
            emit = log.warning if e.status_code >= 500 else log.info
            emit(
                "module_invocation",
                status="error",
                code=e.code,
                error=e.message,
                duration_ms=round(duration_ms, 2),
            )
            self._record(request_id, module, operation, "error", duration_ms, e.code, client)
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0
        log.info(
            "module_invocation",
            status="ok",
            duration_ms=round(duration_ms, 2),
        )
        self._record(request_id, module, operation, "ok", duration_ms, None, client)
        return InvocationResult(
            module=module,
            operation=operation,
            request_id=request_id,
            duration_ms=round(duration_ms, 3),
            result=result,
        )

    def _dispatch(self, module: str, operation: str, payload: Any, request_id: str) -> dict[str, Any]:
        entry = self.registry.get(module)
        descriptor = entry.descriptor
        if not descriptor.enabled:
            raise ModuleUnavailableError(f"Module {module} is disabled", details={"module": module})
        if operation not in descriptor.operations:
            raise OperationNotSupportedError(module, operation)
        if entry.is_local:
            return entry.module.run(operation, payload)

        if self.registry.is_open(module):
            raise ModuleUnavailableError(
                f"Module {module} is unavailable after repeated failures; retry later",
                details={"module": module, "consecutive_failures": entry.consecutive_failures},
            )
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ModuleInputError("Payload must be a JSON object")
        try:
            result = self.http_client.call(
                module, descriptor.base_url or "", operation, payload, request_id=request_id
            )
        except MODULE_FAILURES as e:
            self.registry.record_failure(module, e.message)
            raise
        self.registry.record_success(module)
        return result

    def _record(
        self,
        request_id: str,
        module: str,
        operation: str,
        status: str,
        duration_ms: float,
        error_code: str | None,
        client: str | None,
    ) -> None:
        if self.store is None:
            return
        try:
            self.store.log_request(
                request_id=request_id,
                module=module,
                operation=operation,
                status=status,
                duration_ms=duration_ms,
                error_code=error_code,
                client=client,
            )
        except Exception as e:
            # The request log must never fail the call it records
            logger.warning("request_log_write_failed", request_id=request_id, error=str(e))
