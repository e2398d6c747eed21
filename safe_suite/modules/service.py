"""
Standalone FastAPI service for one SafetyModule.

Serves GET /health, GET /info and POST /{operation}. When SAFE_CORE_URL and
SAFE_MODULE_PUBLIC_URL are both set the service registers itself with the
core on startup and deregisters on shutdown. Registration failures are
logged; the module keeps serving either way.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, Callable

import httpx
from fastapi import Body, FastAPI

from safe_suite.api_server.middleware import (
    API_KEY_HEADER,
    install_error_handlers,
    install_request_logging,
)
from safe_suite.config import Settings, get_settings
from safe_suite.modules.base import SafetyModule
from safe_suite.registry.models import Transport
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

REGISTRATION_TIMEOUT_SEC = 10.0
REGISTRATION_ATTEMPTS = 5
REGISTRATION_BACKOFF_SEC = 2.0


def _core_headers(settings: Settings) -> dict[str, str]:
    if settings.core_api_key:
        return {API_KEY_HEADER: settings.core_api_key}
    return {}


def register_with_core(
    module: SafetyModule,
    settings: Settings,
    client: httpx.Client | None = None,
    *,
    attempts: int = REGISTRATION_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    POST this module's http descriptor to the core. Returns True on 2xx.

    Connect errors and 5xx are retried (the core may still be starting);
    4xx is final.
    """
    if not (settings.core_url and settings.module_public_url):
        return False
    descriptor = module.describe(transport=Transport.HTTP, base_url=settings.module_public_url)
    url = f"{settings.core_url.rstrip('/')}/modules"
    own_client = client is None
    client = client or httpx.Client(timeout=REGISTRATION_TIMEOUT_SEC)
    try:
        for attempt in range(1, attempts + 1):
            try:
                resp = client.post(url, json=descriptor.model_dump(mode="json"), headers=_core_headers(settings))
            except httpx.HTTPError as e:
                logger.warning(
                    "module_registration_failed",
                    module=module.name,
                    core_url=settings.core_url,
                    attempt=attempt,
                    error=str(e),
                )
            else:
                if resp.is_success:
                    logger.info("module_registered_with_core", module=module.name, core_url=settings.core_url)
                    return True
                logger.warning(
                    "module_registration_failed",
                    module=module.name,
                    core_url=settings.core_url,
                    attempt=attempt,
                    status_code=resp.status_code,
                    body=resp.text[:500],
                )
                if resp.status_code < 500:
                    return False
            if attempt < attempts:
                sleep(REGISTRATION_BACKOFF_SEC * attempt)
        return False
    finally:
        if own_client:
            client.close()


def deregister_from_core(
    module: SafetyModule,
    settings: Settings,
    client: httpx.Client | None = None,
) -> bool:
    if not (settings.core_url and settings.module_public_url):
        return False
    url = f"{settings.core_url.rstrip('/')}/modules/{module.name}"
    own_client = client is None
    client = client or httpx.Client(timeout=REGISTRATION_TIMEOUT_SEC)
    try:
        resp = client.delete(url, headers=_core_headers(settings))
    except httpx.HTTPError as e:
        logger.warning("module_deregistration_failed", module=module.name, error=str(e))
        return False
    finally:
        if own_client:
            client.close()
    if resp.is_success or resp.status_code == 404:
        logger.info("module_deregistered_from_core", module=module.name)
        return True
    logger.warning("module_deregistration_failed", module=module.name, status_code=resp.status_code)
    return False


def create_module_app(
    module: SafetyModule,
    settings: Settings | None = None,
    *,
    core_client: httpx.Client | None = None,
) -> FastAPI:
    """Wrap one module in its own FastAPI app."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("module_service_started", module=module.name, operations=module.operation_names())
        registered = await asyncio.to_thread(register_with_core, module, settings, core_client)
        yield
        if registered:
            await asyncio.to_thread(deregister_from_core, module, settings, core_client)
        logger.info("module_service_stopped", module=module.name)

    app = FastAPI(
        title=f"SAFE module: {module.name}",
        description=module.description,
        version=module.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.module = module
    install_request_logging(app, service=module.name)
    install_error_handlers(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return module.health()

    @app.get("/info")
    def info() -> dict[str, Any]:
        if settings.module_public_url:
            descriptor = module.describe(transport=Transport.HTTP, base_url=settings.module_public_url)
        else:
            descriptor = module.describe()
        return descriptor.model_dump(mode="json")

    @app.post("/{operation}")
    def run_operation(operation: str, payload: Any = Body(None)) -> dict[str, Any]:
        """Validate and run one operation; errors render as {"detail", "code"}."""
        return module.run(operation, payload)

    return app
