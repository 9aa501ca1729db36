"""
Database manager for the market store.

Market state lives in a single SQLite file accessed through aiosqlite. Each
public market operation runs inside one ``transaction()`` so a failed guard
leaves no partial writes behind.
"""
from __future__ import annotations

import os
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stakecast.config import Settings


# WAL and foreign keys are per-connection pragmas, so set them on each connect.
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any):
    # aiosqlite wraps the sqlite3 connection in an adapter exposing cursor()
    driver_connection = getattr(dbapi_connection, "driver_connection", dbapi_connection)
    if not isinstance(dbapi_connection, sqlite3.Connection) and not _is_aiosqlite(driver_connection):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _is_aiosqlite(connection: Any) -> bool:
    return type(connection).__module__.startswith("aiosqlite")


def build_sqlite_url(path: str) -> str:
    return f"sqlite+aiosqlite:///{os.path.abspath(path)}"


class DBM:
    def __init__(self, settings: Settings | None = None, *, url: str | None = None):
        self.settings = settings or Settings()
        self.url = url or self.settings.database.database_url(self.settings.test_mode)

        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=self.settings.database.echo,
            future=True,
        )

        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session with an open transaction: commit on success, roll back on any error."""
        async with self.session_maker() as session:
            async with session.begin():
                yield session

    async def dispose(self) -> None:
        await self.engine.dispose()
