"""
Background health monitor for remote modules.

Runs in a daemon thread started by the core app lifespan; never blocks the
API. Every interval it GETs /health on each enabled http module and records
success or failure in the registry.
"""

from __future__ import annotations

import threading

from safe_suite.registry.registry import ModuleRegistry
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


def check_modules_once(registry: ModuleRegistry, http_client: object) -> dict[str, bool]:
    """Probe every enabled http module once. Returns name → healthy."""
    results: dict[str, bool] = {}
    for entry in registry.list():
        if entry.is_local or not entry.descriptor.enabled or not entry.descriptor.base_url:
            continue
        ok, error = http_client.health(entry.descriptor.base_url)
        if ok:
            registry.record_success(entry.name)
        else:
            registry.record_failure(entry.name, f"health check failed: {error}")
        results[entry.name] = ok
    return results


def run_health_monitor(
    registry: ModuleRegistry,
    http_client: object,
    interval_sec: float,
    stop_event: threading.Event,
) -> None:
    """Loop until stop_event is set. Exceptions in one tick are logged, not fatal."""
    logger.info("health_monitor_started", interval_sec=interval_sec)
    while not stop_event.is_set():
        try:
            results = check_modules_once(registry, http_client)
            if results:
                logger.debug("health_monitor_tick", checked=len(results), healthy=sum(results.values()))
        except Exception as e:
            logger.exception("health_monitor_tick_failed", error=str(e))
        stop_event.wait(interval_sec)
    logger.info("health_monitor_stopped")


def start_health_monitor(
    registry: ModuleRegistry,
    http_client: object,
    interval_sec: float,
) -> tuple[threading.Thread, threading.Event]:
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_health_monitor,
        args=(registry, http_client, interval_sec, stop_event),
        name="module-health-monitor",
        daemon=True,
    )
    thread.start()
    return thread, stop_event
