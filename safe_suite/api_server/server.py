"""
FastAPI core service — auth, routing, module discovery, request logs.

create_app() wires settings, store, registry, router and the background
health monitor into one FastAPI app. Endpoints are sync and run in the
server thread pool; the registry is thread-safe.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from safe_suite import __version__
from safe_suite.api_server.middleware import (
    authenticate,
    client_label,
    get_request_id,
    install_error_handlers,
    install_request_logging,
)
from safe_suite.config import Settings, get_settings
from safe_suite.core.exceptions import RegistrationError
from safe_suite.database import SafeStore
from safe_suite.registry import ModuleDescriptor, ModuleRegistry, ModuleStatus, Transport
from safe_suite.registry.discovery import discover_modules
from safe_suite.registry.monitor import SHUTDOWN_JOIN_TIMEOUT_SEC, start_health_monitor
from safe_suite.routing import HttpModuleClient, Router
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class ModuleUpdateRequest(BaseModel):
    """PATCH /modules/{name} body."""

    enabled: bool = Field(..., description="Enable or disable routing to the module")


class SimulateAttackBody(BaseModel):
    """POST /simulate_attack body: shortcut to adversarial.simulate_attack."""

    model_config = ConfigDict(protected_namespaces=())

    model_data: dict[str, Any] = Field(..., description="Linear model: weights, bias")
    attack_params: dict[str, Any] = Field(..., description="method, epsilon, inputs, labels, ...")


class InvocationResponse(BaseModel):
    module: str
    operation: str
    request_id: str
    duration_ms: float
    result: dict[str, Any]


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def require_key(request: Request) -> str | None:
    """Dependency: any valid API key (no-op when auth is disabled)."""
    return authenticate(request, request.app.state.settings)


def require_admin(request: Request) -> str | None:
    """Dependency: admin API key for registry mutation."""
    return authenticate(request, request.app.state.settings, admin=True)


def get_router(request: Request) -> Router:
    return request.app.state.router


def get_registry(request: Request) -> ModuleRegistry:
    return request.app.state.registry


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(settings: Settings | None = None, *, http_client: HttpModuleClient | None = None) -> FastAPI:
    """
    Build the core service.

    Discovery runs here so the registry is populated before the first
    request; the lifespan starts and stops the health monitor and releases
    the HTTP client and store.
    """
    settings = settings or get_settings()
    store: SafeStore | None = None
    if settings.persist:
        store = SafeStore(settings.database_url)
        store.init_db()
    registry = ModuleRegistry(
        failure_threshold=settings.failure_threshold,
        circuit_cooldown_sec=settings.circuit_cooldown_sec,
    )
    discover_modules(registry, settings, store)
    http_client = http_client or HttpModuleClient(
        timeout_sec=settings.module_timeout_sec,
        max_retries=settings.module_max_retries,
        backoff_sec=settings.retry_backoff_sec,
    )
    router = Router(registry, http_client, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the health monitor in a background thread; stop it on shutdown."""
        if not settings.auth_enabled:
            logger.warning("auth_disabled", message="SAFE_API_KEYS is empty; all endpoints are open")
        monitor = None
        if settings.health_check_interval_sec > 0:
            monitor = start_health_monitor(registry, http_client, settings.health_check_interval_sec)
        logger.info("core_service_started", modules=registry.names(), persist=settings.persist)

        yield

        if monitor is not None:
            thread, stop_event = monitor
            stop_event.set()
            thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
            if thread.is_alive():
                logger.warning("health_monitor_shutdown_timeout", timeout_sec=SHUTDOWN_JOIN_TIMEOUT_SEC)
        http_client.close()
        if store is not None:
            store.dispose()
        logger.info("core_service_stopped")

    app = FastAPI(
        title="SAFE Core Service",
        description="Orchestrates AI-safety modules: auth, routing, module discovery, request logs.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.state.router = router
    app.state.http_client = http_client

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )
    install_request_logging(app, service="core")
    install_error_handlers(app)
    _add_routes(app)
    return app


def _add_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness check: API is up."""
        return {"status": "ok"}

    @app.get("/ready")
    def ready(registry: ModuleRegistry = Depends(get_registry)) -> dict[str, Any]:
        """Readiness: degraded when any enabled module is unavailable."""
        snapshot = registry.snapshot()
        degraded = any(status == ModuleStatus.UNAVAILABLE.value for status in snapshot.values())
        return {"status": "degraded" if degraded else "ready", "modules": snapshot}

    @app.get("/modules", dependencies=[Depends(require_key)])
    def list_modules(registry: ModuleRegistry = Depends(get_registry)) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in registry.list()]

    @app.get("/modules/{name}", dependencies=[Depends(require_key)])
    def get_module(name: str, registry: ModuleRegistry = Depends(get_registry)) -> dict[str, Any]:
        entry = registry.get(name)
        out = entry.to_dict()
        out["schemas"] = entry.descriptor.schemas
        return out

    @app.post("/modules", dependencies=[Depends(require_admin)])
    def register_module(
        request: Request,
        descriptor: ModuleDescriptor,
        registry: ModuleRegistry = Depends(get_registry),
    ) -> JSONResponse:
        """
        Register (or replace) a remote module. 201 when new, 200 when replaced.
        Built-in modules cannot be replaced (409).
        """
        if descriptor.transport is not Transport.HTTP:
            raise RegistrationError("Only http modules can be registered over the API")
        created = registry.register(descriptor)
        store = request.app.state.store
        if store is not None:
            store.save_module(descriptor.model_dump(mode="json"))
        return JSONResponse(status_code=201 if created else 200, content=registry.get(descriptor.name).to_dict())

    @app.delete("/modules/{name}", status_code=204, dependencies=[Depends(require_admin)])
    def deregister_module(name: str, request: Request, registry: ModuleRegistry = Depends(get_registry)) -> Response:
        registry.deregister(name)
        store = request.app.state.store
        if store is not None:
            store.delete_module(name)
        return Response(status_code=204)

    @app.patch("/modules/{name}", dependencies=[Depends(require_admin)])
    def update_module(
        name: str,
        body: ModuleUpdateRequest,
        request: Request,
        registry: ModuleRegistry = Depends(get_registry),
    ) -> dict[str, Any]:
        entry = registry.set_enabled(name, body.enabled)
        store = request.app.state.store
        if store is not None and not entry.is_local:
            store.set_module_enabled(name, body.enabled)
        return entry.to_dict()

    @app.post("/modules/{name}/heartbeat", dependencies=[Depends(require_key)])
    def heartbeat(name: str, registry: ModuleRegistry = Depends(get_registry)) -> dict[str, Any]:
        """Module self-report: marks the module healthy and closes its circuit."""
        registry.get(name)
        registry.record_success(name)
        return registry.get(name).to_dict()

    @app.post("/modules/{name}/{operation}", response_model=InvocationResponse)
    def invoke(
        name: str,
        operation: str,
        request: Request,
        payload: dict[str, Any] | None = Body(None),
        key: str | None = Depends(require_key),
        router: Router = Depends(get_router),
    ) -> dict[str, Any]:
        """Route one operation call to a module; the body is the operation payload."""
        result = router.invoke(
            name,
            operation,
            payload or {},
            request_id=get_request_id(request),
            client=client_label(request, key),
        )
        return result.to_dict()

    @app.post("/simulate_attack", response_model=InvocationResponse)
    def simulate_attack(
        body: SimulateAttackBody,
        request: Request,
        key: str | None = Depends(require_key),
        router: Router = Depends(get_router),
    ) -> dict[str, Any]:
        """Shortcut for POST /modules/adversarial/simulate_attack."""
        result = router.invoke(
            "adversarial",
            "simulate_attack",
            body.model_dump(),
            request_id=get_request_id(request),
            client=client_label(request, key),
        )
        return result.to_dict()

    @app.get("/requests", dependencies=[Depends(require_key)])
    def list_requests(
        request: Request,
        module: str | None = Query(None, description="Filter by module name"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict[str, Any]]:
        """Recent routed requests, newest first."""
        store = request.app.state.store
        if store is None:
            raise HTTPException(status_code=404, detail="Request log is disabled (SAFE_PERSIST=false)")
        return store.list_requests(module, limit=limit)
