"""Engine and session construction for the matchmaker schema."""
from __future__ import annotations

from time import perf_counter

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from matchmaker.infrastructure.monitoring.metrics import db_query_duration_seconds

from .models import Base

SQLITE_BUSY_TIMEOUT_SECONDS = 15


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _start_timer(conn, cursor, statement, parameters, context, executemany) -> None:
    conn.info.setdefault("matchmaker_query_start", []).append(perf_counter())


def _stop_timer(conn, cursor, statement, parameters, context, executemany) -> None:
    started = conn.info["matchmaker_query_start"].pop()
    db_query_duration_seconds.observe(perf_counter() - started)


def make_engine(url: str, *, echo: bool = False) -> Engine:
    """Build an engine for ``url`` with query timing attached.

    SQLite connections wait up to the busy timeout for a competing writer
    and enforce foreign keys; other backends get a bounded pool.
    """

    if make_url(url).get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(url, echo=echo, pool_size=10, max_overflow=20, pool_pre_ping=True)

    event.listen(engine, "before_cursor_execute", _start_timer)
    event.listen(engine, "after_cursor_execute", _stop_timer)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)


__all__ = ["SQLITE_BUSY_TIMEOUT_SECONDS", "create_schema", "make_engine", "make_session_factory"]
