"""Async database session and lifecycle helpers."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from zone_uptime.db.models import Base

SQLITE_BUSY_TIMEOUT_S = 30


class Database:
    """Database wrapper exposing engine and managed sessions."""

    def __init__(self, database_url: str) -> None:
        """Create an async SQLAlchemy engine and session factory."""
        connect_args: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            # Concurrent check writers wait for the lock instead of failing.
            connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_S
        self.engine = create_async_engine(database_url, echo=False, connect_args=connect_args)
        self.async_session = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )

    async def init(self) -> None:
        """Create all configured tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the underlying SQLAlchemy engine."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a transactional async session with commit/rollback handling."""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
