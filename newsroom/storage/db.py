from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ..utils.logging import get_logger
from .schema import metadata

logger = get_logger("newsroom.storage.db")


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Build an engine for ``database_url``.

    SQLite connections are shared across the fetch and enrichment threads, so
    same-thread checking is disabled; an in-memory database uses a single
    static connection so every thread sees the same data.
    """
    if database_url.startswith("sqlite"):
        connect_args: dict[str, Any] = {"check_same_thread": False, "timeout": 30}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, echo=echo, connect_args=connect_args)
    return create_engine(database_url, echo=echo, pool_pre_ping=True, pool_timeout=30)


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)
    logger.info("Database schema ensured on %s", engine.url.render_as_string(hide_password=True))


def dialect_insert(engine: Engine) -> Callable[..., Any]:
    """Return the dialect ``insert`` that supports ``ON CONFLICT`` clauses."""
    if engine.dialect.name == "postgresql":
        return postgresql.insert
    if engine.dialect.name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect: {engine.dialect.name}")
