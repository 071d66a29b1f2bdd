"""
Database Configuration and Session Management
============================================

Builds the async engine and session factory for the record store. The
`Database` object is constructed once by the process entry point and passed to
every service that needs storage.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from models import Base

logger = logging.getLogger(__name__)


def to_async_url(database_url: str) -> str:
    """Convert a plain database URL into its async driver form"""
    if database_url.startswith("postgresql://"):
        url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg uses 'ssl' instead of 'sslmode'
        url = url.replace("sslmode=require", "ssl=require")
        url = url.replace("sslmode=prefer", "ssl=prefer")
        return url.replace("sslmode=disable", "ssl=disable")
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://") and "+aiosqlite" not in database_url:
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class Database:
    """Async engine plus session factory"""

    def __init__(self, database_url: str, echo: bool = False, engine: Optional[AsyncEngine] = None):
        if not database_url and engine is None:
            raise ValueError("DATABASE_URL environment variable is required")

        if engine is None:
            url = to_async_url(database_url)
            engine_kwargs = {"echo": echo, "pool_pre_ping": True}
            if url.startswith("postgresql+asyncpg"):
                engine_kwargs.update(
                    pool_size=5,
                    max_overflow=10,
                    pool_recycle=3600,
                    pool_timeout=30,
                    connect_args={
                        "server_settings": {"application_name": "stx_whatsapp_bot"},
                        "timeout": 10,
                        "command_timeout": 30,
                    },
                )
            engine = create_async_engine(url, **engine_kwargs)

        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Async context manager for one unit of work.

        Commits on clean exit, rolls back and re-raises on error.

        Usage:
            async with database.session() as session:
                result = await session.execute(select(Account).where(...))
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all database tables if they don't exist"""
        logger.info("🏗️ Creating database tables (if they don't exist)...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"✅ Database schema verified: {len(Base.metadata.tables)} tables available")

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("🔌 Database engine disposed")
