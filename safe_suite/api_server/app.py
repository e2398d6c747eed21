"""
FastAPI/ASGI application entrypoint.

Build the core app from environment settings.
Run with: uvicorn safe_suite.api_server.app:app --host 0.0.0.0 --port 8000
"""

from safe_suite.api_server.server import create_app
from safe_suite.config import get_settings
from safe_suite.safe_logging import configure_structlog

settings = get_settings()
configure_structlog(settings.log_level, settings.log_format)
app = create_app(settings)

__all__ = ["app"]
