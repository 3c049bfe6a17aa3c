#!/usr/bin/env python3
"""
Vendor Import Service

Runs one import from upload to commit, recording every step on a durable
ImportJob:

    preview: validate -> fetch month statements -> duplicate check ->
             extract -> resolve -> build preview         (no writes)
    confirm: validate approval -> duplicate re-check -> claim commit ->
             chunked commit -> invalidate cache          (writes)

Preview never mutates statements. Confirm only writes what the user
approved; AI matches alone never reach the datastore.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from ..core.config import Config
from ..core.dates import month_key
from ..core.models import MonthStatement
from ..core.money import Money
from ..storage.cache_store import CacheStore, create_cache_store
from ..storage.db import Database
from ..storage.jobs import ImportJob, ImportJobStore, ImportStatus
from ..storage.repository import StatementRepository
from .ai import AIClient, GeminiClient
from .cache import VendorCache
from .duplicates import DuplicateGuard
from .errors import (
    InvalidTransition,
    NoPropertiesMatched,
    NotFoundError,
    PartialCommitFailure,
    ValidationError,
    VendorImportError,
)
from .extractor import DocumentExtractor, ExtractionResult
from .matchers import PropertyMatcher, create_matcher
from .models import ApprovedMatch, CommitResult, ConfirmRequest, DocumentType, ImportSession
from .preview import build_preview
from .reconciler import ReconciliationEngine, rows_digest
from .resolver import PropertyResolver

logger = logging.getLogger(__name__)


@dataclass
class PreviewRequest:
    """
    One uploaded document.

    vendor and description are required for PDFs and ignored for
    spreadsheets, whose rows carry their own.
    """

    organization_id: str
    user_id: str
    statement_id: str
    filename: str
    data: bytes
    vendor: str | None = None
    description: str | None = None
    allow_duplicates: bool = False


@dataclass
class PreviewResult:
    """Preview plus the job that will accept the confirm."""

    job: ImportJob
    session: ImportSession

    def to_dict(self) -> dict[str, Any]:
        return {"jobId": self.job.id, **self.session.to_dict()}


class VendorImportService:
    """
    Import orchestration over the pipeline components.

    Use VendorImportService.create() to wire everything from configuration.
    """

    def __init__(
        self,
        database: Database,
        cache: VendorCache,
        extractor: DocumentExtractor,
        resolver: PropertyResolver,
        guard: DuplicateGuard,
        reconciler: ReconciliationEngine,
        jobs: ImportJobStore,
    ):
        self.database = database
        self.cache = cache
        self.extractor = extractor
        self.resolver = resolver
        self.guard = guard
        self.reconciler = reconciler
        self.jobs = jobs

    @classmethod
    def create(
        cls,
        config: Config,
        database: Database,
        ai_client: AIClient | None = None,
        cache_store: CacheStore | None = None,
        matcher: PropertyMatcher | None = None,
    ) -> "VendorImportService":
        """
        Build a service from configuration.

        Args:
            ai_client: Defaults to a GeminiClient when an API key is configured
            cache_store: Defaults to the configured backend
            matcher: Defaults to the configured matcher
        """
        if ai_client is None and config.ai.api_key:
            ai_client = GeminiClient(config.ai)
        store = cache_store or create_cache_store(config.cache, database.session_factory)
        cache = VendorCache(store, config.cache)
        settings = config.vendor_import

        return cls(
            database=database,
            cache=cache,
            extractor=DocumentExtractor(settings, ai_client),
            resolver=PropertyResolver(
                matcher or create_matcher(config, ai_client),
                cache=cache,
                timeout_seconds=config.ai.timeout_seconds,
            ),
            guard=DuplicateGuard(database.session_factory, cache),
            reconciler=ReconciliationEngine(
                database.session_factory,
                cache,
                chunk_size=settings.chunk_size,
                recompute_batch_size=settings.recompute_batch_size,
                default_expense_day=settings.default_expense_day,
            ),
            jobs=ImportJobStore(database.session_factory),
        )

    # Shared lookups

    async def _month_statements(self, organization_id: str, month: date) -> list[MonthStatement]:
        async def load() -> list[MonthStatement]:
            async with self.database.session_factory() as session:
                return await StatementRepository(session).list_month_statements(organization_id, month)

        return await self.cache.month_statements(organization_id, month, load)

    async def _get_job(self, job_id: str, organization_id: str) -> ImportJob:
        job = await self.jobs.get(job_id)
        if job is None or job.organization_id != organization_id:
            raise NotFoundError(f"Import {job_id} was not found")
        return job

    async def _fail(self, job_id: str, message: str) -> None:
        job = await self.jobs.get(job_id)
        if job is None or job.status.is_terminal:
            return
        await self.jobs.transition(job_id, ImportStatus.FAILED, error=message)

    # Preview

    async def preview(self, request: PreviewRequest) -> PreviewResult:
        """
        Extract, resolve and group a document for review. Writes nothing
        except the job record.

        Raises:
            NotFoundError: Statement missing or owned by another organization
            ValidationError: Bad file, columns or request
            PossibleDuplicate: The vendor/description is already in the month
            NoExpensesFound: Document had no usable line items
            AIServiceUnavailable: PDF extraction could not reach the AI
        """
        async with self.database.session_factory() as session:
            statement = await StatementRepository(session).get_statement(request.statement_id)
        if statement is None or statement.organization_id != request.organization_id:
            raise NotFoundError(f"Statement {request.statement_id} was not found for this organization")
        month = statement.statement_month

        job = await self.jobs.create(
            organization_id=request.organization_id,
            user_id=request.user_id,
            statement_id=statement.id,
            statement_month=month,
            document_name=request.filename,
        )

        try:
            session_result = await self._run_preview(job.id, request, month)
        except VendorImportError as e:
            if not isinstance(e, InvalidTransition):
                await self._fail(job.id, e.user_message)
            raise
        except Exception:
            logger.exception("Preview of %s failed unexpectedly", request.filename)
            await self._fail(job.id, "Unexpected error while processing the document")
            raise

        job = await self.jobs.transition(
            job.id,
            ImportStatus.PREVIEW_READY,
            result={"preview": session_result.to_dict()},
            progress={"step": "preview", "message": "Preview ready", "percent": 100},
        )
        logger.info(
            "Preview ready for import %s: %d matched, %d unmatched properties",
            job.id,
            session_result.summary.matched_property_count,
            session_result.summary.unmatched_property_count,
        )
        return PreviewResult(job=job, session=session_result)

    async def _run_preview(self, job_id: str, request: PreviewRequest, month: date) -> ImportSession:
        await self.jobs.update_progress(job_id, "validating", "Validating file")
        document_type = DocumentType.from_filename(request.filename)
        self.extractor.check_size(request.data)

        await self.jobs.update_progress(job_id, "fetching", f"Loading statements for {month_key(month)}")
        month_statements = await self._month_statements(request.organization_id, month)
        candidates = [statement.canonical_property for statement in month_statements]

        vendor = (request.vendor or "").strip()
        description = (request.description or "").strip()
        if document_type == DocumentType.PDF:
            if not vendor or not description:
                raise ValidationError("PDF imports need a vendor and a description")
            # Before any AI spend
            await self.jobs.update_progress(job_id, "checking", "Checking for duplicate imports")
            await self.guard.check(request.organization_id, month, vendor, description, request.allow_duplicates)

        await self.jobs.update_progress(job_id, "extracting", f"Reading {request.filename}")
        extraction: ExtractionResult = await self.extractor.extract(
            request.data,
            request.filename,
            [candidate.name for candidate in candidates],
            vendor=vendor or None,
            description=description or None,
        )
        await self.jobs.transition(job_id, ImportStatus.EXTRACTED)

        if document_type == DocumentType.SPREADSHEET:
            await self.jobs.update_progress(job_id, "checking", "Checking for duplicate imports")
            pairs = dict.fromkeys((item.vendor, item.description) for item in extraction.items)
            for pair_vendor, pair_description in pairs:
                await self.guard.check(
                    request.organization_id, month, pair_vendor, pair_description, request.allow_duplicates
                )

        await self.jobs.update_progress(
            job_id, "matching", f"Matching {len(extraction.identifiers)} properties"
        )
        matches = await self.resolver.resolve(extraction.identifiers, candidates)
        await self.jobs.transition(job_id, ImportStatus.RESOLVED)

        return build_preview(extraction.items, matches, candidates, extraction.errors)

    # Confirm

    async def confirm(
        self,
        job_id: str,
        organization_id: str,
        user_id: str,
        request: ConfirmRequest,
        allow_duplicates: bool = False,
    ) -> CommitResult:
        """
        Commit the approved matches of a previewed import.

        A job left in COMMITTING by a PartialCommitFailure may be confirmed
        again with the same request; already-committed rows are skipped. A
        resume with different rows is rejected once any row was saved.

        Statements are read straight from the datastore rather than the
        cache, and each chunk re-checks its statements are still live.

        Raises:
            NotFoundError: Unknown job, or an approved property has no statement this month
            InvalidTransition: Job is not awaiting confirmation
            NoPropertiesMatched: Nothing was approved
            ValidationError: Malformed approval (wrong statement, totals mismatch)
            PossibleDuplicate: The month gained a matching expense since preview
            CommitInProgress: Another confirm of this import is still running
            PartialCommitFailure: A chunk failed after earlier chunks committed
        """
        job = await self._get_job(job_id, organization_id)
        if job.status not in (ImportStatus.PREVIEW_READY, ImportStatus.COMMITTING):
            raise InvalidTransition(job.id, job.status.value, ImportStatus.COMMITTING.value)
        if request.target_statement_id != job.statement_id:
            raise ValidationError(f"Statement {request.target_statement_id} does not belong to import {job.id}")

        approved = [match for match in request.approved_matches if match.expenses]
        if not approved:
            raise NoPropertiesMatched(f"No properties were approved for import {job.id}")

        month = job.statement_month
        async with self.database.session_factory() as session:
            month_statements = await StatementRepository(session).list_month_statements(organization_id, month)
        by_property = {statement.property_id: statement for statement in month_statements}
        targets: list[tuple[ApprovedMatch, str]] = []
        for match in approved:
            statement = by_property.get(match.property.id)
            if statement is None:
                raise NotFoundError(f'Property "{match.property.name}" has no statement for {month_key(month)}')
            expense_total = Money.total(expense.amount for expense in match.expenses)
            if expense_total != match.total_amount:
                raise ValidationError(
                    f'Total for "{match.property.name}" is {match.total_amount} '
                    f"but its expenses add up to {expense_total}"
                )
            for expense in match.expenses:
                if not expense.vendor or not expense.description:
                    raise ValidationError(f'Every expense for "{match.property.name}" needs a vendor and description')
            targets.append((match, statement.statement_id))

        pairs = dict.fromkeys(
            (expense.vendor, expense.description) for match, _ in targets for expense in match.expenses
        )
        for vendor, description in pairs:
            await self.guard.check_for_commit(organization_id, month, vendor, description, job.id, allow_duplicates)

        rows = self.reconciler.flatten(job.id, targets, month)
        job, claim = await self.jobs.claim_commit(
            job.id,
            rows_digest(rows),
            progress={"step": "committing", "message": f"Saving {len(rows)} expenses", "percent": 0},
        )

        # Once committing starts, cancelling the caller must not stop the chunks
        return await asyncio.shield(self._run_commit(job, user_id, rows, claim))

    async def _run_commit(self, job: ImportJob, user_id: str, rows, claim: str) -> CommitResult:
        async def report(done: int, total: int) -> None:
            percent = round(done * 100 / total) if total else 100
            await self.jobs.update_progress(job.id, "committing", f"Saved {done} of {total} expenses", percent)

        nothing_saved = False
        try:
            result = await self.reconciler.commit(
                job.id, job.organization_id, job.statement_month, user_id, rows, progress=report
            )
        except PartialCommitFailure as e:
            nothing_saved = e.committed_rows == 0
            await self.jobs.transition(
                job.id,
                ImportStatus.COMMITTING,
                error=e.user_message,
                progress={
                    "step": "committing",
                    "message": e.user_message,
                    "percent": round(e.committed_rows * 100 / len(rows)) if rows else 0,
                },
            )
            raise
        else:
            return await self._finish_commit(job, result)
        finally:
            await self.jobs.release_commit(job.id, claim, forget_rows=nothing_saved)

    async def _finish_commit(self, job: ImportJob, result: CommitResult) -> CommitResult:
        final = await self.jobs.get(job.id)
        previous = (final.result if final else None) or {}
        await self.jobs.transition(
            job.id,
            ImportStatus.COMMITTED,
            result={**previous, "commit": result.to_dict()},
            progress={"step": "committing", "message": "Import complete", "percent": 100},
        )
        logger.info(
            "Import %s committed: %d created, %d skipped across %d properties",
            job.id,
            result.created_count,
            result.skipped_count,
            len(result.updated_properties),
        )
        return result

    # Job control

    async def cancel(self, job_id: str, organization_id: str) -> ImportJob:
        """
        Abandon an import before it starts committing.

        Raises:
            NotFoundError: Unknown job
            InvalidTransition: The job is committing or already finished
        """
        await self._get_job(job_id, organization_id)
        return await self.jobs.transition(
            job_id,
            ImportStatus.CANCELLED,
            progress={"step": "cancelled", "message": "Import cancelled", "percent": None},
        )

    async def status(self, job_id: str, organization_id: str) -> ImportJob:
        """Current job record, for polling from any process."""
        return await self._get_job(job_id, organization_id)
