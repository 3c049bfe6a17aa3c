#!/usr/bin/env python3
"""
Database Engine and Session Management

Async SQLAlchemy engine, session factory and schema creation for the
statement datastore. All money columns hold integer cents.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ..core.config import Config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns one async engine and the session factory bound to it.

    Sessions are request-scoped: callers open one per unit of work and never
    share it between concurrent tasks.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False, autoflush=False
        )

    @classmethod
    def from_config(cls, config: Config) -> "Database":
        """Create a Database from the application configuration."""
        return cls(config.database.url, echo=config.database.echo)

    async def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        # Register table classes on Base.metadata
        from . import tables  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
