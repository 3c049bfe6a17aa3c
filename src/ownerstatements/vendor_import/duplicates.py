#!/usr/bin/env python3
"""
Duplicate Guard

Stops a (vendor, description) pair from being imported twice into the same
month. A hit raises PossibleDuplicate; the caller may override explicitly.
Nothing is ever skipped or deduplicated silently.
"""

import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.dates import month_key
from ..storage.repository import StatementRepository
from .cache import VendorCache
from .errors import PossibleDuplicate

logger = logging.getLogger(__name__)


def import_key_prefix(job_id: str) -> str:
    """Prefix shared by every import_key written by one job."""
    return f"{job_id}:"


class DuplicateGuard:
    """
    Cache-backed duplicate detection.

    Args:
        session_factory: Sessions for authoritative datastore lookups
        cache: existingExpense relation; a cached answer is trusted
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cache: VendorCache):
        self.session_factory = session_factory
        self.cache = cache

    async def exists(self, organization_id: str, month: date, vendor: str, description: str) -> bool:
        """Does any expense with this vendor and description exist in the month?"""
        cached = await self.cache.get_existing_expense(organization_id, month, vendor, description)
        if cached is not None:
            return cached

        async with self.session_factory() as session:
            found = await StatementRepository(session).expense_exists(organization_id, month, vendor, description)
        await self.cache.set_existing_expense(organization_id, month, vendor, description, found)
        return found

    async def check(
        self,
        organization_id: str,
        month: date,
        vendor: str,
        description: str,
        allow_duplicates: bool = False,
    ) -> None:
        """
        Raise PossibleDuplicate if the pair was already imported for the month.

        Args:
            allow_duplicates: Explicit user override; the check is skipped
        """
        if allow_duplicates:
            logger.warning(
                'Duplicate check overridden for "%s" / "%s" in %s', vendor, description, month_key(month)
            )
            return
        if not await self.exists(organization_id, month, vendor, description):
            return

        async with self.session_factory() as session:
            names = await StatementRepository(session).properties_with_expense(
                organization_id, month, vendor, description
            )
        logger.info('Possible duplicate import of "%s" / "%s" for %s', vendor, description, month_key(month))
        raise PossibleDuplicate(vendor, description, month_key(month), names)

    async def check_for_commit(
        self,
        organization_id: str,
        month: date,
        vendor: str,
        description: str,
        job_id: str,
        allow_duplicates: bool = False,
    ) -> None:
        """
        Re-check right before commit, straight from the datastore.

        Rows written by this job itself (an earlier, partially committed
        attempt) do not count as duplicates.
        """
        if allow_duplicates:
            return
        async with self.session_factory() as session:
            repository = StatementRepository(session)
            prefix = import_key_prefix(job_id)
            if not await repository.expense_exists(organization_id, month, vendor, description, prefix):
                return
            names = await repository.properties_with_expense(organization_id, month, vendor, description, prefix)
        raise PossibleDuplicate(vendor, description, month_key(month), names)

