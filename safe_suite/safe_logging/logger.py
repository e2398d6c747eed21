"""
Structured JSON logging for the core service, module services, and CLI.

Every record carries event_type (the first argument to a log call), level,
an ISO-8601 UTC timestamp and the emitting logger's name; request-scoped
records add request_id, module and operation.

A default configuration from LOG_LEVEL / LOG_FORMAT in the process
environment is applied on import so library code can log immediately.
Entrypoints reconfigure from Settings (which also reads .env) before serving:

    settings = get_settings()
    configure_structlog(settings.log_level, settings.log_format)

No safe_suite imports here; everything else imports this module.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog._config import BoundLoggerLazyProxy

DEFAULT_LEVEL = "INFO"
DEFAULT_FORMAT = "json"


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog's 'event' key becomes event_type; message mirrors it unless given."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None, stream: Any = None) -> None:
    """
    (Re)configure structlog.

    level: stdlib level name; unknown names fall back to INFO.
    fmt: "json" for one JSON object per line, anything else for
    the console renderer.
    stream: where records are written; stdout unless given.

    Loggers are not cached, so reconfiguring reaches loggers created at import.
    """
    level = (level or os.getenv("LOG_LEVEL") or DEFAULT_LEVEL).upper()
    fmt = (fmt or os.getenv("LOG_FORMAT") or DEFAULT_FORMAT).strip().lower()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Logger for a module; resolved per call so a later configure_structlog() applies.

        logger = get_logger(__name__)
        logger.info("module_invocation", module="bias", operation="detect_bias", duration_ms=4.2)
    """
    # structlog.get_logger(name, logger=name) collides with wrap_logger's `logger` parameter.
    return BoundLoggerLazyProxy(None, logger_factory_args=(name,), initial_values={"logger": name})


def bind_request(request_id: str, name: str = "safe_suite", **fields: Any) -> structlog.BoundLogger:
    """Logger with request_id (and any extra fields) bound to every record."""
    return get_logger(name).bind(request_id=request_id, **fields)
