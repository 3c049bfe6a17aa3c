"""
Storage Package

Relational datastore, cache stores and durable import jobs.

This package provides:
- Async SQLAlchemy engine/session management and table definitions
- StatementRepository for statement, expense and totals queries
- Key/TTL cache stores (in-process and shared SQL-backed)
- ImportJobStore implementing the import state machine
"""

from .cache_store import CacheStore, MemoryCacheStore, SqlCacheStore, create_cache_store
from .db import Base, Database
from .jobs import ImportJob, ImportJobStore, ImportStatus
from .repository import StatementRepository

__all__ = [
    "Base",
    # Cache stores
    "CacheStore",
    # Database
    "Database",
    # Import jobs
    "ImportJob",
    "ImportJobStore",
    "ImportStatus",
    "MemoryCacheStore",
    "SqlCacheStore",
    # Repository
    "StatementRepository",
    "create_cache_store",
]
