"""
SQLAlchemy-backed store for module registrations and routed request logs.

One row per remotely registered module (so registrations survive a core
restart) and an append-only request log of every routed invocation.
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import Boolean, Column, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from safe_suite.safe_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

DEFAULT_REQUEST_LOG_LIMIT = 100
MAX_REQUEST_LOG_LIMIT = 1000


# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class RegisteredModule(Base):
    """A remote module registration (descriptor fields; runtime state is not persisted)."""

    __tablename__ = "registered_modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False, index=True)
    transport = Column(String(16), nullable=False, default="http")
    base_url = Column(String(512), nullable=True)
    description = Column(String(1024), nullable=True)
    version = Column(String(64), nullable=True)
    operations = Column(Text, nullable=False)  # JSON array of operation names
    tags = Column(Text, nullable=True)  # JSON array
    enabled = Column(Boolean, nullable=False, default=True)
    registered_at = Column(Integer, nullable=False)  # Unix timestamp

    def to_descriptor_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "transport": self.transport,
            "base_url": self.base_url,
            "description": self.description or "",
            "version": self.version or "0.0.0",
            "operations": json.loads(self.operations or "[]"),
            "tags": json.loads(self.tags or "[]"),
            "enabled": self.enabled,
        }


class RequestLogEntry(Base):
    """Append-only log of routed module invocations."""

    __tablename__ = "request_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(64), nullable=False, index=True)
    module = Column(String(64), nullable=False, index=True)
    operation = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False)  # ok | error
    error_code = Column(String(64), nullable=True)
    duration_ms = Column(Float, nullable=False, default=0.0)
    client = Column(String(128), nullable=True)
    timestamp = Column(Integer, nullable=False, index=True)  # Unix

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "module": self.module,
            "operation": self.operation,
            "status": self.status,
            "error_code": self.error_code,
            "duration_ms": self.duration_ms,
            "client": self.client,
            "timestamp": self.timestamp,
        }


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------


class SafeStore:
    """Engine + session factory for one database URL."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        connect_args: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)

    @property
    def safe_url(self) -> str:
        """URL without credentials, for logs."""
        return self.database_url.split("?")[0].split("@")[-1].split("//")[-1]

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
            logger.info("store_init_db", url=self.safe_url)
        except Exception as e:
            logger.exception("store_init_db_failed", url=self.safe_url, error=str(e))
            raise

    def dispose(self) -> None:
        self._engine.dispose()

    # -- registrations ----------------------------------------------------------

    def save_module(self, descriptor: dict[str, Any]) -> bool:
        """Upsert a registration by name. Returns True if inserted, False if updated."""
        name = descriptor["name"]
        values = {
            "transport": descriptor.get("transport", "http"),
            "base_url": descriptor.get("base_url"),
            "description": descriptor.get("description") or "",
            "version": descriptor.get("version") or "0.0.0",
            "operations": json.dumps(list(descriptor.get("operations") or [])),
            "tags": json.dumps(list(descriptor.get("tags") or [])),
            "enabled": bool(descriptor.get("enabled", True)),
        }
        with self.session_scope() as session:
            row = session.query(RegisteredModule).filter(RegisteredModule.name == name).first()
            if row is None:
                session.add(RegisteredModule(name=name, registered_at=int(time.time()), **values))
                inserted = True
            else:
                for key, value in values.items():
                    setattr(row, key, value)
                inserted = False
        logger.debug("store_module_saved", module=name, inserted=inserted)
        return inserted

    def delete_module(self, name: str) -> bool:
        with self.session_scope() as session:
            deleted = session.query(RegisteredModule).filter(RegisteredModule.name == name).delete()
        return bool(deleted)

    def set_module_enabled(self, name: str, enabled: bool) -> bool:
        with self.session_scope() as session:
            updated = (
                session.query(RegisteredModule)
                .filter(RegisteredModule.name == name)
                .update({"enabled": enabled})
            )
        return bool(updated)

    def load_modules(self) -> list[dict[str, Any]]:
        with self.session_scope() as session:
            rows = session.query(RegisteredModule).order_by(RegisteredModule.id).all()
            return [r.to_descriptor_dict() for r in rows]

    # -- request log ------------------------------------------------------------

    def log_request(
        self,
        *,
        request_id: str,
        module: str,
        operation: str,
        status: str,
        duration_ms: float,
        error_code: str | None = None,
        client: str | None = None,
    ) -> int:
        with self.session_scope() as session:
            row = RequestLogEntry(
                request_id=request_id,
                module=module,
                operation=operation,
                status=status,
                error_code=error_code,
                duration_ms=round(duration_ms, 3),
                client=(client or "")[:128] or None,
                timestamp=int(time.time()),
            )
            session.add(row)
            session.flush()
            return row.id

    def list_requests(
        self,
        module: str | None = None,
        *,
        limit: int = DEFAULT_REQUEST_LOG_LIMIT,
    ) -> list[dict[str, Any]]:
        """Newest first, optionally filtered by module."""
        limit = max(1, min(int(limit), MAX_REQUEST_LOG_LIMIT))
        with self.session_scope() as session:
            q = session.query(RequestLogEntry)
            if module:
                q = q.filter(RequestLogEntry.module == module.strip())
            rows = q.order_by(RequestLogEntry.id.desc()).limit(limit).all()
            return [r.to_dict() for r in rows]
