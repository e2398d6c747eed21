"""
In-memory module registry with per-module health and circuit state.

Thread-safe: FastAPI sync handlers, the router, and the health monitor
thread all read and write it concurrently.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from safe_suite.core.exceptions import ModuleConflictError, UnknownModuleError
from safe_suite.registry.models import ModuleDescriptor, ModuleEntry, ModuleStatus, Transport
from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_CIRCUIT_COOLDOWN_SEC = 30.0
MAX_ERROR_LENGTH = 500


class ModuleRegistry:
    """Name → ModuleEntry mapping guarded by an RLock."""

    def __init__(
        self,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        circuit_cooldown_sec: float = DEFAULT_CIRCUIT_COOLDOWN_SEC,
        clock: Any = time.time,
    ) -> None:
        self._entries: dict[str, ModuleEntry] = {}
        self._lock = threading.RLock()
        self.failure_threshold = failure_threshold
        self.circuit_cooldown_sec = circuit_cooldown_sec
        self._clock = clock

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def register(self, descriptor: ModuleDescriptor, module: Any = None) -> bool:
        """
        Add or replace a module. Returns True when newly added, False when replaced.

        An http registration may not replace a local (in-process) module.
        Local registrations require the module instance.
        """
        if descriptor.transport is Transport.LOCAL and module is None:
            raise ValueError(f"local module {descriptor.name} registered without an instance")
        with self._lock:
            existing = self._entries.get(descriptor.name)
            if existing is not None and existing.is_local and descriptor.transport is Transport.HTTP:
                raise ModuleConflictError(
                    f"Module {descriptor.name} is built in and cannot be replaced by a remote registration",
                    details={"module": descriptor.name},
                )
            entry = ModuleEntry(descriptor=descriptor, module=module)
            if descriptor.transport is Transport.LOCAL:
                entry.status = ModuleStatus.HEALTHY
                entry.last_seen = self._clock()
            self._entries[descriptor.name] = entry
        logger.info(
            "module_registered",
            module=descriptor.name,
            transport=descriptor.transport.value,
            replaced=existing is not None,
        )
        return existing is None

    def deregister(self, name: str) -> ModuleEntry:
        with self._lock:
            entry = self._entries.pop(name, None)
        if entry is None:
            raise UnknownModuleError(name)
        logger.info("module_deregistered", module=name)
        return entry

    def get(self, name: str) -> ModuleEntry:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise UnknownModuleError(name)
        return entry

    def list(self) -> list[ModuleEntry]:
        with self._lock:
            return [self._entries[k] for k in sorted(self._entries)]

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def local_module(self, name: str) -> Any:
        entry = self.get(name)
        return entry.module if entry.is_local else None

    def set_enabled(self, name: str, enabled: bool) -> ModuleEntry:
        with self._lock:
            entry = self.get(name)
            entry.descriptor = entry.descriptor.model_copy(update={"enabled": enabled})
            if enabled:
                entry.consecutive_failures = 0
                entry.last_failure_at = None
                entry.trial_started_at = None
        logger.info("module_enabled_changed", module=name, enabled=enabled)
        return entry

    def record_success(self, name: str) -> None:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return
            if entry.status is not ModuleStatus.HEALTHY:
                logger.info("module_healthy", module=name, previous=entry.status.value)
            entry.status = ModuleStatus.HEALTHY
            entry.consecutive_failures = 0
            entry.last_failure_at = None
            entry.trial_started_at = None
            entry.last_error = None
            entry.last_seen = self._clock()

    def record_failure(self, name: str, error: str) -> int:
        """Count a failure; returns the consecutive failure count (0 if module is gone)."""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return 0
            entry.consecutive_failures += 1
            entry.last_failure_at = self._clock()
            entry.trial_started_at = None
            entry.last_error = error[:MAX_ERROR_LENGTH]
            if entry.consecutive_failures >= self.failure_threshold:
                if entry.status is not ModuleStatus.UNAVAILABLE:
                    logger.warning(
                        "module_unavailable",
                        module=name,
                        failures=entry.consecutive_failures,
                        error=entry.last_error,
                    )
                entry.status = ModuleStatus.UNAVAILABLE
            return entry.consecutive_failures

    def is_open(self, name: str) -> bool:
        """
        True while the module's circuit is open: failures reached the threshold
        and the last failure is within the cooldown.

        Once the cooldown lapses the circuit is half-open: the first caller is
        let through as a trial and marked under the lock, and later callers are
        refused until record_success() or record_failure() settles the trial.
        A trial that never settles expires after another cooldown.
        """
        with self._lock:
            entry = self._entries.get(name)
            if entry is None or entry.last_failure_at is None:
                return False
            if entry.consecutive_failures < self.failure_threshold:
                return False
            now = self._clock()
            if (now - entry.last_failure_at) < self.circuit_cooldown_sec:
                return True
            trial = entry.trial_started_at
            if trial is not None and (now - trial) < self.circuit_cooldown_sec:
                return True
            entry.trial_started_at = now
            return False

    def snapshot(self) -> dict[str, str]:
        """Name → effective status (disabled wins over health)."""
        return {e.name: e.to_dict()["status"] for e in self.list()}
