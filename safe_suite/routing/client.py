"""
httpx client for remote (http transport) modules.

POST {base_url}/{operation} with the JSON payload and X-Request-ID. Connect
errors, timeouts and 5xx answers are retried with linear backoff; the
module's own error envelope is mapped back onto the SAFE error hierarchy.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import httpx

from safe_suite.core.exceptions import (
    ModuleExecutionError,
    ModuleInputError,
    ModuleTimeoutError,
    ModuleUnavailableError,
    OperationNotSupportedError,
)
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_SEC = 0.2
HEALTH_TIMEOUT_SEC = 5.0


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"detail": resp.text[:500]}
    return body if isinstance(body, dict) else {"detail": str(body)[:500]}


class HttpModuleClient:
    """Thin retrying wrapper around one shared httpx.Client."""

    def __init__(
        self,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_sec: float = DEFAULT_BACKOFF_SEC,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_sec = backoff_sec
        self._client = client or httpx.Client()
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def call(
        self,
        module: str,
        base_url: str,
        operation: str,
        payload: dict[str, Any],
        *,
        request_id: str,
    ) -> dict[str, Any]:
        url = f"{base_url.rstrip('/')}/{operation}"
        headers = {"X-Request-ID": request_id}
        timed_out = False
        last_error = ""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            if attempt:
                self._sleep(self.backoff_sec * attempt)
            try:
                resp = self._client.post(url, json=payload, headers=headers, timeout=self.timeout_sec)
            except httpx.TimeoutException as e:
                timed_out, last_error = True, f"timeout: {e}"
            except httpx.TransportError as e:
                timed_out, last_error = False, f"{type(e).__name__}: {e}"
            else:
                if resp.status_code < 500:
                    return self._handle(module, operation, resp)
                body = _error_body(resp)
                if body.get("code") == "module_error":
                    # The module ran and failed; repeating the call will not help
                    raise ModuleExecutionError(
                        str(body.get("detail") or f"{module}.{operation} failed"),
                        details={"module": module, "operation": operation},
                    )
                timed_out, last_error = False, f"HTTP {resp.status_code}"
            logger.warning(
                "module_call_retry" if attempt + 1 < attempts else "module_call_gave_up",
                module=module,
                operation=operation,
                request_id=request_id,
                attempt=attempt + 1,
                error=last_error,
            )
        details = {"module": module, "operation": operation, "attempts": attempts, "error": last_error}
        if timed_out:
            raise ModuleTimeoutError(f"Module {module} timed out after {attempts} attempt(s)", details=details)
        raise ModuleUnavailableError(f"Module {module} unavailable: {last_error}", details=details)

    def _handle(self, module: str, operation: str, resp: httpx.Response) -> dict[str, Any]:
        if resp.is_success:
            try:
                body = resp.json()
            except ValueError as e:
                raise ModuleExecutionError(f"Module {module} returned invalid JSON") from e
            if not isinstance(body, dict):
                raise ModuleExecutionError(f"Module {module} returned a non-object result")
            return body
        body = _error_body(resp)
        detail = str(body.get("detail") or f"HTTP {resp.status_code}")
        if resp.status_code in (400, 422):
            errors = body.get("errors") if isinstance(body.get("errors"), list) else None
            raise ModuleInputError(detail, errors=errors)
        if resp.status_code == 404:
            raise OperationNotSupportedError(module, operation)
        raise ModuleExecutionError(
            f"Module {module} rejected the call: {detail}",
            details={"module": module, "operation": operation, "status": resp.status_code},
        )

    def health(self, base_url: str) -> tuple[bool, str | None]:
        """GET {base_url}/health once. Returns (ok, error)."""
        try:
            resp = self._client.get(f"{base_url.rstrip('/')}/health", timeout=min(self.timeout_sec, HEALTH_TIMEOUT_SEC))
        except httpx.HTTPError as e:
            return False, f"{type(e).__name__}: {e}"
        if resp.is_success:
            return True, None
        return False, f"HTTP {resp.status_code}"
