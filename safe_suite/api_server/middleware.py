"""
HTTP middleware — request IDs, access logging, API-key auth, error rendering.

Shared by the core service and the standalone module services so both
answer with the same error envelope:
    {"detail": "...", "code": "...", "request_id": "...", "errors": [...]}
"""

from __future__ import annotations

import hmac
import time
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from safe_suite.config import Settings
from safe_suite.core.exceptions import AuthenticationError, InternalError, PermissionDeniedError, SafeError
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
API_KEY_HEADER = "X-API-Key"
MAX_REQUEST_ID_LENGTH = 64


def _clean_request_id(raw: str | None) -> str:
    raw = (raw or "").strip()
    if raw and len(raw) <= MAX_REQUEST_ID_LENGTH and raw.isprintable():
        return raw
    return uuid.uuid4().hex


def get_request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    if rid is None:
        rid = _clean_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = rid
    return rid


def install_request_logging(app: FastAPI, service: str) -> None:
    """Assign request ids, echo them back, and log one http_request event per call."""

    @app.middleware("http")
    async def request_context(request: Request, call_next: Any) -> Any:
        request_id = get_request_id(request)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "http_request_failed",
                service=service,
                request_id=request_id,
                method=request.method,
                path=request.url.path,
            )
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "http_request",
            service=service,
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return response


def error_response(request: Request, exc: SafeError) -> JSONResponse:
    body = exc.to_dict()
    body["request_id"] = get_request_id(request)
    return JSONResponse(status_code=exc.status_code, content=body, headers={REQUEST_ID_HEADER: body["request_id"]})


def install_error_handlers(app: FastAPI) -> None:
    """Render SafeError, HTTPException, request validation and unexpected errors consistently."""

    @app.exception_handler(SafeError)
    async def safe_error_handler(request: Request, exc: SafeError) -> JSONResponse:
        return error_response(request, exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "request_id": get_request_id(request)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Invalid request",
                "code": "invalid_input",
                "errors": errors,
                "request_id": get_request_id(request),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        # Traceback is logged by the request middleware as http_request_failed
        logger.error(
            "unhandled_error",
            request_id=get_request_id(request),
            path=request.url.path,
            error_type=type(exc).__name__,
        )
        return error_response(request, InternalError("Internal server error"))


# -----------------------------------------------------------------------------
# API-key authentication (FastAPI dependencies)
# -----------------------------------------------------------------------------


def _presented_key(request: Request) -> str | None:
    key = (request.headers.get(API_KEY_HEADER) or "").strip()
    if key:
        return key
    auth = (request.headers.get("Authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def _key_in(key: str, keys: frozenset[str]) -> bool:
    # Check every key so timing does not reveal which one matched
    matched = False
    for candidate in keys:
        if hmac.compare_digest(key.encode("utf-8"), candidate.encode("utf-8")):
            matched = True
    return matched


def authenticate(request: Request, settings: Settings, *, admin: bool = False) -> str | None:
    """
    Return the caller's key (None when auth is disabled).

    Raises AuthenticationError for a missing/invalid key and
    PermissionDeniedError when an admin route gets a non-admin key.
    """
    if not settings.auth_enabled:
        return None
    key = _presented_key(request)
    if not key:
        raise AuthenticationError("Missing API key")
    all_keys = settings.api_keys | settings.admin_api_keys
    if not _key_in(key, all_keys):
        logger.warning("auth_rejected", request_id=get_request_id(request), path=request.url.path)
        raise AuthenticationError("Invalid API key")
    if admin and settings.admin_api_keys and not _key_in(key, settings.admin_api_keys):
        raise PermissionDeniedError("Admin API key required")
    return key


def client_label(request: Request, key: str | None) -> str:
    """Short, non-secret caller label for the request log."""
    if key:
        return "key:" + key[:4] + "..."
    return request.client.host if request.client else "unknown"


__all__ = [
    "API_KEY_HEADER",
    "REQUEST_ID_HEADER",
    "authenticate",
    "client_label",
    "error_response",
    "get_request_id",
    "install_error_handlers",
    "install_request_logging",
]
