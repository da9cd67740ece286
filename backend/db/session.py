"""Async engine and session factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core import settings


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _install_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        # Cascading deletes of likes rely on enforced foreign keys.
        cursor.execute("PRAGMA foreign_keys=ON")
        # Readers must not block the writer holding a post's counter lock.
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def build_async_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying SQLite connection settings when needed."""
    if not is_sqlite_url(database_url):
        return create_async_engine(database_url, echo=echo, pool_pre_ping=True)

    engine = create_async_engine(
        database_url,
        echo=echo,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout_seconds,
        },
    )
    _install_sqlite_pragmas(engine)
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async_engine = build_async_engine(settings.database_url, echo=settings.database_echo)
AsyncSessionMaker = build_session_maker(async_engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionMaker() as session:
        yield session
