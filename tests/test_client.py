"""
Pytest tests for HttpModuleClient: retries, backoff, and status mapping.
Remote modules are faked with httpx.MockTransport.
"""

from __future__ import annotations

import json

import httpx
import pytest

from safe_suite.core.exceptions import (
    ModuleExecutionError,
    ModuleInputError,
    ModuleTimeoutError,
    ModuleUnavailableError,
    OperationNotSupportedError,
)
from safe_suite.routing import HttpModuleClient

BASE = "http://mod.local:9000"


def make_client(handler, *, max_retries=2, sleeps=None):
    return HttpModuleClient(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        max_retries=max_retries,
        backoff_sec=0.1,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )


def call(client, operation="scan", payload=None):
    return client.call("mod", BASE, operation, payload or {"x": 1}, request_id="req-1")


def test_success_posts_payload_with_request_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    assert call(make_client(handler)) == {"ok": True}
    assert seen[0].url == httpx.URL(f"{BASE}/scan")
    assert seen[0].headers["X-Request-ID"] == "req-1"
    assert json.loads(seen[0].content) == {"x": 1}


def test_5xx_is_retried_with_linear_backoff():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503, json={"detail": "busy"})
        return httpx.Response(200, json={"ok": True})

    assert call(make_client(handler, sleeps=sleeps)) == {"ok": True}
    assert len(calls) == 3
    assert sleeps == pytest.approx([0.1, 0.2])


def test_exhausted_5xx_is_unavailable():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(502)

    with pytest.raises(ModuleUnavailableError) as exc_info:
        call(make_client(handler))
    assert len(calls) == 3
    assert exc_info.value.details["attempts"] == 3


def test_connect_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ModuleUnavailableError):
        call(make_client(handler, max_retries=0))


def test_timeout_is_module_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ModuleTimeoutError):
        call(make_client(handler, max_retries=1))


def test_module_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(500, json={"detail": "scan crashed", "code": "module_error"})

    with pytest.raises(ModuleExecutionError, match="scan crashed"):
        call(make_client(handler))
    assert len(calls) == 1


def test_422_keeps_module_errors():
    errors = [{"loc": ["x"], "msg": "bad", "type": "value_error"}]

    def handler(request):
        return httpx.Response(422, json={"detail": "Invalid payload", "code": "invalid_input", "errors": errors})

    with pytest.raises(ModuleInputError) as exc_info:
        call(make_client(handler))
    assert exc_info.value.errors == errors


def test_404_is_operation_not_supported():
    with pytest.raises(OperationNotSupportedError):
        call(make_client(lambda r: httpx.Response(404, json={"detail": "Not Found"})))


def test_other_4xx_is_execution_error():
    with pytest.raises(ModuleExecutionError):
        call(make_client(lambda r: httpx.Response(403, json={"detail": "nope"})))


@pytest.mark.parametrize(
    "response",
    [httpx.Response(200, json=[1, 2]), httpx.Response(200, text="not json")],
)
def test_non_object_result_is_execution_error(response):
    with pytest.raises(ModuleExecutionError):
        call(make_client(lambda r: response))


def test_health():
    ok_client = make_client(lambda r: httpx.Response(200, json={"status": "ok"}))
    assert ok_client.health(BASE) == (True, None)
    bad_client = make_client(lambda r: httpx.Response(503))
    assert bad_client.health(BASE) == (False, "HTTP 503")

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    ok, error = make_client(refuse).health(BASE)
    assert ok is False
    assert "ConnectError" in error
