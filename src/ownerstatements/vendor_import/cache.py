#!/usr/bin/env python3
"""
Vendor Import Cache

Three independent relations over a CacheStore:
- monthStatements(org, month): the month's statements with property data
- existingExpense(org, month, vendor, description): duplicate-check boolean
- gpt/match(content hash): resolver results for an identifier/property set

Every read may miss; callers then do the authoritative lookup and populate
the cache. The cache is never the source of truth. Any write to a month's
statements must call invalidate_month before it is considered complete.
"""

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..core.config import CacheConfig
from ..core.dates import month_key
from ..core.models import CanonicalProperty, MatchResult, MonthStatement
from ..storage.cache_store import CacheStore

logger = logging.getLogger(__name__)


def content_hash(identifiers: list[str], candidates: list[CanonicalProperty]) -> str:
    """
    Order-independent hash of an identifier set and a candidate property set.

    Re-uploading the same document against the same properties yields the
    same hash, whatever order rows or properties arrive in.
    """
    payload = {
        "identifiers": sorted(set(identifiers)),
        "properties": sorted([c.id, c.name, c.address or ""] for c in candidates),
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:32]


def pair_hash(vendor: str, description: str) -> str:
    """Fixed-length digest of an exact (vendor, description) pair."""
    encoded = json.dumps([vendor, description], ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:32]


class CacheKeys:
    """Namespaced key builders: <prefix>:vendor_import:<relation>:..."""

    def __init__(self, prefix: str):
        self.namespace = f"{prefix}:vendor_import"

    def month_statements(self, organization_id: str, month: date) -> str:
        return f"{self.namespace}:statements:{organization_id}:{month_key(month)}"

    def existing_expense(self, organization_id: str, month: date, vendor: str, description: str) -> str:
        return f"{self.namespace}:expenses:{organization_id}:{month_key(month)}:{pair_hash(vendor, description)}"

    def existing_expense_prefix(self, organization_id: str, month: date) -> str:
        return f"{self.namespace}:expenses:{organization_id}:{month_key(month)}:"

    def gpt_match(self, digest: str) -> str:
        return f"{self.namespace}:gpt:{digest}"


class VendorCache:
    """
    Typed access to the three vendor import cache relations.

    Args:
        store: Backing key/TTL store
        config: Key prefix and per-relation TTLs
    """

    def __init__(self, store: CacheStore, config: CacheConfig):
        self.store = store
        self.config = config
        self.keys = CacheKeys(config.key_prefix)

    # monthStatements

    async def get_month_statements(self, organization_id: str, month: date) -> list[MonthStatement] | None:
        cached = await self.store.get(self.keys.month_statements(organization_id, month))
        if cached is None:
            logger.debug("Month statements cache miss for %s %s", organization_id, month_key(month))
            return None
        logger.debug("Month statements cache hit for %s %s", organization_id, month_key(month))
        return [MonthStatement.from_dict(item) for item in cached]

    async def set_month_statements(
        self, organization_id: str, month: date, statements: list[MonthStatement]
    ) -> None:
        await self.store.set(
            self.keys.month_statements(organization_id, month),
            [statement.to_dict() for statement in statements],
            self.config.month_statements_ttl,
        )

    async def month_statements(
        self,
        organization_id: str,
        month: date,
        loader: Callable[[], Awaitable[list[MonthStatement]]],
    ) -> list[MonthStatement]:
        """Read-through lookup: cached value, else loader() stored and returned."""
        cached = await self.get_month_statements(organization_id, month)
        if cached is not None:
            return cached
        statements = await loader()
        await self.set_month_statements(organization_id, month, statements)
        return statements

    # existingExpense

    async def get_existing_expense(
        self, organization_id: str, month: date, vendor: str, description: str
    ) -> bool | None:
        cached = await self.store.get(self.keys.existing_expense(organization_id, month, vendor, description))
        logger.debug(
            "Existing expense cache %s for %s/%s", "miss" if cached is None else "hit", vendor, description
        )
        return None if cached is None else bool(cached)

    async def set_existing_expense(
        self, organization_id: str, month: date, vendor: str, description: str, exists: bool
    ) -> None:
        await self.store.set(
            self.keys.existing_expense(organization_id, month, vendor, description),
            exists,
            self.config.existing_expense_ttl,
        )

    # gpt/match

    async def get_matches(
        self, identifiers: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult] | None:
        cached = await self.store.get(self.keys.gpt_match(content_hash(identifiers, candidates)))
        if cached is None:
            logger.debug("Match cache miss for %d identifiers", len(identifiers))
            return None
        logger.debug("Match cache hit for %d identifiers", len(identifiers))
        return {item["identifier"]: MatchResult.from_dict(item) for item in cached}

    async def set_matches(
        self,
        identifiers: list[str],
        candidates: list[CanonicalProperty],
        results: dict[str, MatchResult],
    ) -> None:
        await self.store.set(
            self.keys.gpt_match(content_hash(identifiers, candidates)),
            [result.to_dict() for result in results.values()],
            self.config.match_ttl,
        )

    # Invalidation

    async def invalidate_month(self, organization_id: str, month: date) -> int:
        """
        Drop every monthStatements and existingExpense entry for (org, month).

        Match results are keyed by content, not by month, and stay cached.

        Returns:
            Number of entries removed
        """
        removed = await self.store.delete_prefix(self.keys.month_statements(organization_id, month))
        removed += await self.store.delete_prefix(self.keys.existing_expense_prefix(organization_id, month))
        logger.info(
            "Invalidated %d cache entries for %s %s", removed, organization_id, month_key(month)
        )
        return removed
