"""
Persistence layer — registered remote modules and the request log.

SQLAlchemy-backed; SQLite by default, any SQLAlchemy URL (e.g. PostgreSQL)
via SAFE_DB_URL / DATABASE_URL.
"""

from safe_suite.database.store import (
    RegisteredModule,
    RequestLogEntry,
    SafeStore,
)

__all__ = ["RegisteredModule", "RequestLogEntry", "SafeStore"]
