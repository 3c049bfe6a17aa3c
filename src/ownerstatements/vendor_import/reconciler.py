#!/usr/bin/env python3
"""
Reconciliation Engine

Writes human-approved expenses and keeps statement totals consistent.

1. Flatten approved matches into prospective Expense rows, each with a
   deterministic import_key of "<job id>:<row index>". The rows_digest of
   the flattened set pins a resume to the same rows in the same order
2. Drop rows this job already committed on an earlier attempt
3. Split the rest into fixed-size chunks
4. Per chunk, in one transaction: lock the target statements and check they
   are still live in the month, bulk-insert the rows, then recompute all four
   totals of every statement the chunk touched
5. Invalidate the month's cache entries

Chunks run one after another. A failed chunk rolls back alone; earlier
chunks stay committed and PartialCommitFailure reports how far the commit
got. Re-submitting the same approved set resumes where it stopped. A
datastore that handles large long-running transactions could commit
everything in a single transaction instead.
"""

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.dates import default_expense_date, month_key
from ..storage.repository import StatementRepository
from .cache import VendorCache
from .duplicates import import_key_prefix
from .errors import NotFoundError, PartialCommitFailure
from .models import ApprovedMatch, CommitResult, ProspectiveExpense

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]


def rows_digest(rows: list[ProspectiveExpense]) -> str:
    """Digest of prospective rows, sensitive to content and order."""
    payload = [
        [
            row.import_key,
            row.statement_id,
            row.expense_date.isoformat(),
            row.vendor,
            row.description,
            row.amount.to_cents(),
        ]
        for row in rows
    ]
    return hashlib.sha256(json.dumps(payload, ensure_ascii=False).encode("utf-8")).hexdigest()


class ReconciliationEngine:
    """
    Chunked, resumable expense commit.

    Args:
        session_factory: One transaction per chunk is opened from here
        cache: Invalidated for the month after any rows are written
        chunk_size: Rows per transaction
        recompute_batch_size: Statements aggregated per grouped SUM query
        default_expense_day: Day of month for expenses without a date
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: VendorCache,
        chunk_size: int = 300,
        recompute_batch_size: int = 5,
        default_expense_day: int = 15,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.chunk_size = chunk_size
        self.recompute_batch_size = recompute_batch_size
        self.default_expense_day = default_expense_day

    def flatten(
        self,
        job_id: str,
        approved: list[tuple[ApprovedMatch, str]],
        statement_month: date,
    ) -> list[ProspectiveExpense]:
        """
        Turn approved matches into prospective rows.

        Args:
            approved: (approved match, target statement id) pairs, in request order
            statement_month: Month used for the default expense date
        """
        fallback = default_expense_date(statement_month, self.default_expense_day).date
        rows = []
        for match, statement_id in approved:
            for expense in match.expenses:
                rows.append(
                    ProspectiveExpense(
                        import_key=f"{job_id}:{len(rows)}",
                        statement_id=statement_id,
                        property_name=match.property.name,
                        expense_date=expense.date.date if expense.date else fallback,
                        vendor=expense.vendor,
                        description=expense.description,
                        amount=expense.amount,
                    )
                )
        return rows

    def chunk(self, rows: list[ProspectiveExpense]) -> list[list[ProspectiveExpense]]:
        """Split rows into chunk_size batches, preserving order."""
        return [rows[start : start + self.chunk_size] for start in range(0, len(rows), self.chunk_size)]

    async def _committed_keys(self, job_id: str) -> set[str]:
        async with self.session_factory() as session:
            return await StatementRepository(session).committed_import_keys(import_key_prefix(job_id))

    async def _commit_chunk(
        self,
        index: int,
        rows: list[ProspectiveExpense],
        acting_user_id: str,
        organization_id: str,
        statement_month: date,
    ) -> int:
        """Insert one chunk and recompute its statements in a single transaction."""
        async with self.session_factory.begin() as session:
            repository = StatementRepository(session)
            targets = {row.statement_id for row in rows}
            live = await repository.live_statement_ids(targets, organization_id, statement_month, for_update=True)
            missing = sorted(targets - live)
            if missing:
                raise NotFoundError(
                    f"Statement {missing[0]} is no longer open for {month_key(statement_month)}"
                )
            inserted = await repository.insert_expenses([row.to_row() for row in rows])
            await repository.recompute_totals(targets, acting_user_id, batch_size=self.recompute_batch_size)
        return inserted

    async def commit(
        self,
        job_id: str,
        organization_id: str,
        statement_month: date,
        acting_user_id: str,
        rows: list[ProspectiveExpense],
        progress: ProgressCallback | None = None,
    ) -> CommitResult:
        """
        Commit prospective rows chunk by chunk.

        Returns:
            Created and skipped counts plus the names of updated properties

        Raises:
            PartialCommitFailure: A chunk failed; counts cover this and any
                earlier attempt of the same job
        """
        already = await self._committed_keys(job_id)
        pending = [row for row in rows if row.import_key not in already]
        skipped = len(rows) - len(pending)
        if skipped:
            logger.info("Import %s resuming: %d of %d rows already committed", job_id, skipped, len(rows))

        chunks = self.chunk(pending)
        created = 0
        updated_properties: dict[str, None] = {}

        for index, rows_in_chunk in enumerate(chunks):
            try:
                inserted = await self._commit_chunk(
                    index, rows_in_chunk, acting_user_id, organization_id, statement_month
                )
            except Exception as e:
                committed_rows = skipped + created
                logger.exception(
                    "Import %s chunk %d of %d failed after %d rows committed",
                    job_id,
                    index + 1,
                    len(chunks),
                    committed_rows,
                )
                if created:
                    await self.cache.invalidate_month(organization_id, statement_month)
                raise PartialCommitFailure(
                    committed_rows=committed_rows,
                    remaining_rows=len(rows) - committed_rows,
                    failed_chunk_index=index,
                    total_chunks=len(chunks),
                ) from e

            created += inserted
            skipped += len(rows_in_chunk) - inserted
            for row in rows_in_chunk:
                updated_properties.setdefault(row.property_name, None)
            logger.info(
                "Import %s chunk %d of %d committed (%d rows)", job_id, index + 1, len(chunks), inserted
            )
            if progress is not None:
                await progress(skipped + created, len(rows))

        await self.cache.invalidate_month(organization_id, statement_month)
        return CommitResult(
            created_count=created,
            skipped_count=skipped,
            updated_properties=list(updated_properties),
        )
