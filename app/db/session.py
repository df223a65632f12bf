"""
Database engine and session factory.

The engine is built lazily on first use and held by ``DatabaseRegistry``
rather than module globals, so credentials can be swapped at runtime with
``reconfigure()`` (tests point it at SQLite, ops can rotate the DSN).

Pool parameters:
- pool_size: steady connections (10 suits a 4-worker uvicorn)
- max_overflow: burst connections above pool_size
- pool_timeout: seconds to wait for a free connection
- pool_recycle: recycle period, avoids PostgreSQL dropping idle connections
- pool_pre_ping: check liveness before handing out a connection
"""

import logging
import threading
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

logger = logging.getLogger("linkbio.db")

SLOW_QUERY_THRESHOLD_MS = 500


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DB_ECHO,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        echo=settings.DB_ECHO,
    )


def _install_slow_query_log(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000
        if total_ms >= SLOW_QUERY_THRESHOLD_MS:
            stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
            logger.warning(
                "Slow query detected",
                extra={
                    "duration_ms": round(total_ms, 2),
                    "statement": stmt_preview,
                    "threshold_ms": SLOW_QUERY_THRESHOLD_MS,
                },
            )


class DatabaseRegistry:
    """Holds the engine and session factory for one database URL."""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._engine: Optional[Engine] = None
        self._factory: Optional[sessionmaker] = None
        self._lock = threading.Lock()

    @property
    def url(self) -> str:
        return self._url or settings.database_url

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    engine = _build_engine(self.url)
                    _install_slow_query_log(engine)
                    self._factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
                    self._engine = engine
                    logger.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
        return self._engine

    def session(self) -> Session:
        if self._factory is None:
            self.engine  # builds the factory
        return self._factory()

    def reconfigure(self, url: Optional[str] = None) -> None:
        """Drop the current engine; the next access rebuilds it for ``url``."""
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._factory = None
            self._url = url

    def get_pool_status(self) -> dict:
        pool = self.engine.pool
        if not hasattr(pool, "checkedout"):
            return {"pool": type(pool).__name__}
        return {
            "pool_size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        }


db_registry = DatabaseRegistry()


def SessionLocal() -> Session:
    return db_registry.session()
