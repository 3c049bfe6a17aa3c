#!/usr/bin/env python3
"""
Durable Import Jobs

Import job records live in the shared datastore so progress, previews and
results survive restarts and can be polled from any process.

State machine:
    UPLOADED -> EXTRACTED -> RESOLVED -> PREVIEW_READY -> COMMITTING -> COMMITTED

Any state before COMMITTING may fail or be cancelled. COMMITTING may repeat
(resume after a partial commit) and only ever ends in COMMITTED. Entering
COMMITTING goes through claim_commit, so one confirm at a time owns the
commit and a resume must carry the rows of the first attempt. COMMITTED,
FAILED and CANCELLED are terminal.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import CommitInProgress, InvalidTransition, NotFoundError, ValidationError
from .tables import ImportJobRecord, new_id, utc_now

logger = logging.getLogger(__name__)

# A commit claim older than this is treated as abandoned by a crashed process
COMMIT_LEASE = timedelta(minutes=15)


class ImportStatus(Enum):
    """Lifecycle states of one import."""

    UPLOADED = "uploaded"
    EXTRACTED = "extracted"
    RESOLVED = "resolved"
    PREVIEW_READY = "preview_ready"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportStatus.COMMITTED, ImportStatus.FAILED, ImportStatus.CANCELLED)

    def can_transition_to(self, target: "ImportStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.UPLOADED: frozenset({ImportStatus.EXTRACTED, ImportStatus.FAILED, ImportStatus.CANCELLED}),
    ImportStatus.EXTRACTED: frozenset({ImportStatus.RESOLVED, ImportStatus.FAILED, ImportStatus.CANCELLED}),
    ImportStatus.RESOLVED: frozenset({ImportStatus.PREVIEW_READY, ImportStatus.FAILED, ImportStatus.CANCELLED}),
    ImportStatus.PREVIEW_READY: frozenset({ImportStatus.COMMITTING, ImportStatus.CANCELLED}),
    ImportStatus.COMMITTING: frozenset({ImportStatus.COMMITTING, ImportStatus.COMMITTED}),
    ImportStatus.COMMITTED: frozenset(),
    ImportStatus.FAILED: frozenset(),
    ImportStatus.CANCELLED: frozenset(),
}


@dataclass
class ImportJob:
    """Snapshot of one import job record."""

    id: str
    organization_id: str
    user_id: str
    statement_id: str
    statement_month: date
    document_name: str
    status: ImportStatus
    progress: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ImportJobRecord) -> "ImportJob":
        return cls(
            id=record.id,
            organization_id=record.organization_id,
            user_id=record.user_id,
            statement_id=record.statement_id,
            statement_month=record.statement_month,
            document_name=record.document_name,
            status=ImportStatus(record.status),
            progress=dict(record.progress or {}),
            result=record.result,
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "jobId": self.id,
            "organizationId": self.organization_id,
            "userId": self.user_id,
            "statementId": self.statement_id,
            "statementMonth": self.statement_month.isoformat(),
            "documentName": self.document_name,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class ImportJobStore:
    """
    Persists import jobs and enforces the state machine.

    Every call runs in its own short transaction so job state is visible to
    other processes as soon as the call returns.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self,
        organization_id: str,
        user_id: str,
        statement_id: str,
        statement_month: date,
        document_name: str,
    ) -> ImportJob:
        """Create a job in UPLOADED state."""
        async with self._session_factory.begin() as session:
            record = ImportJobRecord(
                organization_id=organization_id,
                user_id=user_id,
                statement_id=statement_id,
                statement_month=statement_month,
                document_name=document_name,
                status=ImportStatus.UPLOADED.value,
                progress={"step": "validating", "message": "Upload received", "percent": 0},
            )
            session.add(record)
            await session.flush()
            job = ImportJob.from_record(record)
        logger.info("Created import job %s for statement %s", job.id, statement_id)
        return job

    async def get(self, job_id: str) -> ImportJob | None:
        """Get a job by id, or None if it does not exist."""
        async with self._session_factory() as session:
            record = await session.get(ImportJobRecord, job_id)
            return None if record is None else ImportJob.from_record(record)

    async def transition(
        self,
        job_id: str,
        target: ImportStatus,
        *,
        error: str | None = None,
        result: dict[str, Any] | None = None,
        progress: dict[str, Any] | None = None,
    ) -> ImportJob:
        """
        Move a job to a new state.

        Raises:
            NotFoundError: If the job does not exist
            InvalidTransition: If the current state forbids the move
        """
        async with self._session_factory.begin() as session:
            record = await session.get(ImportJobRecord, job_id, with_for_update=True)
            if record is None:
                raise NotFoundError(f"Import {job_id} was not found")

            current = ImportStatus(record.status)
            if not current.can_transition_to(target):
                raise InvalidTransition(job_id, current.value, target.value)

            record.status = target.value
            record.updated_at = utc_now()
            if error is not None:
                record.error = error
            if result is not None:
                record.result = result
            if progress is not None:
                record.progress = progress
            await session.flush()
            job = ImportJob.from_record(record)

        if current != target:
            logger.info("Import job %s: %s -> %s", job_id, current.value, target.value)
        return job

    async def update_progress(self, job_id: str, step: str, message: str, percent: int | None = None) -> None:
        """Record progress without changing state."""
        async with self._session_factory.begin() as session:
            record = await session.get(ImportJobRecord, job_id)
            if record is None:
                return
            record.progress = {"step": step, "message": message, "percent": percent}
            record.updated_at = utc_now()
        logger.debug("Import job %s progress: %s (%s)", job_id, message, step)

    async def claim_commit(
        self, job_id: str, rows_digest: str, progress: dict[str, Any] | None = None
    ) -> tuple[ImportJob, str]:
        """
        Move a job into COMMITTING and take its commit claim.

        The first claim records the digest of the rows being committed. A later
        claim (a resume) must present the same digest. The claim is a
        compare-and-set on the job row, so two confirms of one import cannot
        commit at the same time.

        Returns:
            The updated job and the claim token to pass to release_commit

        Raises:
            NotFoundError: If the job does not exist
            InvalidTransition: If the job is not awaiting or resuming a commit
            ValidationError: If a resume carries different rows than the first attempt
            CommitInProgress: If another confirm holds a live claim
        """
        token = new_id()
        now = utc_now()
        async with self._session_factory.begin() as session:
            record = await session.get(ImportJobRecord, job_id, with_for_update=True)
            if record is None:
                raise NotFoundError(f"Import {job_id} was not found")

            current = ImportStatus(record.status)
            if not current.can_transition_to(ImportStatus.COMMITTING):
                raise InvalidTransition(job_id, current.value, ImportStatus.COMMITTING.value)
            if record.commit_digest is not None and record.commit_digest != rows_digest:
                raise ValidationError(
                    f"Import {job_id} was partly saved from a different approval. "
                    "Confirm it again with the original approval to finish it."
                )

            values: dict[str, Any] = {
                "status": ImportStatus.COMMITTING.value,
                "commit_digest": rows_digest,
                "commit_claim": token,
                "commit_claimed_at": now,
                "updated_at": now,
            }
            if progress is not None:
                values["progress"] = progress
            claimed = await session.execute(
                update(ImportJobRecord)
                .where(
                    ImportJobRecord.id == job_id,
                    ImportJobRecord.status == current.value,
                    or_(
                        ImportJobRecord.commit_claim.is_(None),
                        ImportJobRecord.commit_claimed_at < now - COMMIT_LEASE,
                    ),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise CommitInProgress(job_id)

            await session.refresh(record)
            job = ImportJob.from_record(record)

        if current != ImportStatus.COMMITTING:
            logger.info("Import job %s: %s -> %s", job_id, current.value, ImportStatus.COMMITTING.value)
        else:
            logger.info("Import job %s: resuming commit", job_id)
        return job, token

    async def release_commit(self, job_id: str, token: str, forget_rows: bool = False) -> None:
        """
        Give up a commit claim taken by claim_commit.

        Args:
            forget_rows: Also drop the recorded row digest, for an attempt that
                wrote nothing, so the import may be confirmed with a new approval
        """
        values: dict[str, Any] = {"commit_claim": None, "commit_claimed_at": None}
        if forget_rows:
            values["commit_digest"] = None
        async with self._session_factory.begin() as session:
            await session.execute(
                update(ImportJobRecord)
                .where(ImportJobRecord.id == job_id, ImportJobRecord.commit_claim == token)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        logger.debug("Import job %s released its commit claim", job_id)
