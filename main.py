"""
Main entrypoint: SAFE core service.

Module discovery and the background health monitor are started by the app
lifespan; the API runs in the main thread. On SIGINT/SIGTERM uvicorn shuts
down and the lifespan stops the monitor.

Env: SAFE_API_HOST, SAFE_API_PORT, SAFE_API_KEYS, SAFE_DB_URL, SAFE_MODULES_FILE, etc.

Standalone module: safe serve-module adversarial --port 8001
"""

import sys

# Configure structured JSON logging before other imports that may log
from safe_suite.safe_logging import configure_structlog, get_logger

logger = get_logger("main")


def main() -> None:
    """Run the core FastAPI service with uvicorn."""
    from safe_suite.config import get_settings
    from safe_suite.core.exceptions import ConfigError

    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("main_config_error", message=str(e))
        sys.exit(1)
    configure_structlog(settings.log_level, settings.log_format)

    from safe_suite.api_server.server import create_app
    import uvicorn

    app = create_app(settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
