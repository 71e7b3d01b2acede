from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    return dsn


@dataclass(slots=True)
class Database:
    """Process-wide async engine and connection pool.

    Started once by the application lifespan and disposed at shutdown; every
    repository shares the same session factory.
    """

    dsn: str
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: float = 10.0
    _engine: AsyncEngine | None = None
    _session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database has not been started")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Database has not been started")
        return self._session_factory

    async def start(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                to_asyncpg_dsn(self.dsn),
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
            self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
            logger.info("Database pool started (size=%d, overflow=%d)", self.pool_size, self.max_overflow)
        return self._engine

    async def test_connection(self) -> bool:
        engine = await self.start()
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database pool drained")
        self._engine = None
        self._session_factory = None
