"""
Engine and session factory for the schedule store
"""

import math

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings


def store_connect_args(settings: Settings) -> dict:
    """Driver arguments bounding connect and statement time by STORE_TIMEOUT_SECONDS."""
    backend = make_url(settings.DATABASE_URL).get_backend_name()
    timeout = settings.STORE_TIMEOUT_SECONDS

    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}
    if backend == "postgresql":
        return {
            "connect_timeout": max(1, math.ceil(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    if backend in ("mysql", "mariadb"):
        seconds = max(1, math.ceil(timeout))
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return {}


def build_engine(settings: Settings) -> Engine:
    """Create an engine whose blocking calls are bounded by STORE_TIMEOUT_SECONDS."""
    connect_args = store_connect_args(settings)

    if settings.DATABASE_URL.startswith("sqlite"):
        engine_kwargs = {"connect_args": connect_args, "echo": settings.DATABASE_ECHO}
        if ":memory:" in settings.DATABASE_URL:
            engine_kwargs["poolclass"] = StaticPool
        engine = create_engine(settings.DATABASE_URL, **engine_kwargs)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        connect_args=connect_args,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_timeout=settings.STORE_TIMEOUT_SECONDS,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
