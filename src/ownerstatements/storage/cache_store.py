#!/usr/bin/env python3
"""
Key/TTL Cache Stores

Two interchangeable stores behind one async protocol:
- MemoryCacheStore: per-process dict with monotonic-clock expiry
- SqlCacheStore: shared cache_entries table, visible to every process using
  the same database

Values must be JSON-serializable. get() returns None on a miss, so None
itself cannot be cached. Writes are last-writer-wins; TTL is the only
staleness bound.
"""

import json
import logging
import time
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import CacheConfig
from .tables import CacheEntry

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Async key/TTL store used by the vendor import cache."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


class MemoryCacheStore:
    """
    In-process cache with per-entry TTL.

    Values are stored as JSON text so callers never share mutable objects
    with the cache.
    """

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, json.dumps(value))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


class SqlCacheStore:
    """
    Cache shared through the cache_entries table.

    Each operation runs in its own short transaction, independent of any
    import's datastore transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock=time.time):
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            entry = await session.scalar(
                select(CacheEntry).where(CacheEntry.key == key, CacheEntry.expires_at > self._clock())
            )
            return None if entry is None else entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = self._clock() + ttl_seconds
        try:
            async with self._session_factory.begin() as session:
                entry = await session.get(CacheEntry, key)
                if entry is None:
                    session.add(CacheEntry(key=key, value=value, expires_at=expires_at))
                else:
                    entry.value = value
                    entry.expires_at = expires_at
        except IntegrityError:
            # Another writer inserted the key first; last writer wins
            async with self._session_factory.begin() as session:
                await session.execute(
                    update(CacheEntry).where(CacheEntry.key == key).values(value=value, expires_at=expires_at)
                )

    async def delete(self, key: str) -> None:
        async with self._session_factory.begin() as session:
            await session.execute(delete(CacheEntry).where(CacheEntry.key == key))

    async def delete_prefix(self, prefix: str) -> int:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(CacheEntry)
                .where(CacheEntry.key.startswith(prefix, autoescape=True))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def purge_expired(self) -> int:
        """Delete expired entries; returns the number removed."""
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(CacheEntry)
                .where(CacheEntry.expires_at <= self._clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount


def create_cache_store(
    config: CacheConfig,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> CacheStore:
    """
    Create the cache store selected by configuration.

    Args:
        config: Cache configuration ("memory" or "sql" backend)
        session_factory: Required for the "sql" backend

    Raises:
        ValueError: If the backend is unknown or "sql" has no session factory
    """
    if config.backend == "memory":
        return MemoryCacheStore()
    if config.backend == "sql":
        if session_factory is None:
            raise ValueError("SQL cache backend requires a session factory")
        return SqlCacheStore(session_factory)
    raise ValueError(f"Unknown cache backend: {config.backend}")
