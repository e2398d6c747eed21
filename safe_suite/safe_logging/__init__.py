"""
Structured logging for SAFE.

JSON logs with timestamp, event_type, request_id and module fields.
Use get_logger() in all modules for aggregation-friendly output.
"""

from safe_suite.safe_logging.logger import bind_request, configure_structlog, get_logger

__all__ = ["bind_request", "configure_structlog", "get_logger"]
