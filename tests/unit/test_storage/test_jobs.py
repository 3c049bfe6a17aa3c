#!/usr/bin/env python3
"""Tests for the import job state machine and durable job store."""

import asyncio
from datetime import timedelta

import pytest

from ownerstatements.core.errors import CommitInProgress, InvalidTransition, NotFoundError, ValidationError
from ownerstatements.storage import jobs as jobs_module
from ownerstatements.storage.jobs import ImportJobStore, ImportStatus
from tests.fixtures.datastore import MARCH, ORG, USER, open_database


class TestImportStatus:
    """Test allowed state transitions."""

    def test_happy_path(self):
        """Test the forward path from upload to commit."""
        path = [
            ImportStatus.UPLOADED,
            ImportStatus.EXTRACTED,
            ImportStatus.RESOLVED,
            ImportStatus.PREVIEW_READY,
            ImportStatus.COMMITTING,
            ImportStatus.COMMITTED,
        ]
        for current, target in zip(path, path[1:]):
            assert current.can_transition_to(target)

    def test_committing_resumes_but_never_fails_or_cancels(self):
        """Test COMMITTING can repeat and only ends in COMMITTED."""
        assert ImportStatus.COMMITTING.can_transition_to(ImportStatus.COMMITTING)
        assert not ImportStatus.COMMITTING.can_transition_to(ImportStatus.CANCELLED)
        assert not ImportStatus.COMMITTING.can_transition_to(ImportStatus.FAILED)

    @pytest.mark.parametrize(
        "status", [ImportStatus.UPLOADED, ImportStatus.EXTRACTED, ImportStatus.RESOLVED, ImportStatus.PREVIEW_READY]
    )
    def test_cancellable_before_commit(self, status):
        """Test every pre-commit state can be cancelled."""
        assert status.can_transition_to(ImportStatus.CANCELLED)

    @pytest.mark.parametrize("status", [ImportStatus.COMMITTED, ImportStatus.FAILED, ImportStatus.CANCELLED])
    def test_terminal_states(self, status):
        """Test terminal states allow nothing."""
        assert status.is_terminal
        assert not any(status.can_transition_to(target) for target in ImportStatus)

    def test_no_skipping_preview(self):
        """Test extraction output cannot be committed without a preview."""
        assert not ImportStatus.EXTRACTED.can_transition_to(ImportStatus.COMMITTING)
        assert not ImportStatus.UPLOADED.can_transition_to(ImportStatus.PREVIEW_READY)


class TestImportJobStore:
    """Test persisted jobs."""

    def test_create_and_walk_states(self, database_url):
        """Test jobs persist each state, progress and result."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await store.create(ORG, USER, "statement-1", MARCH, "march.xlsx")
                created = await store.get(job.id)
                await store.update_progress(job.id, "extracting", "Reading march.xlsx", 25)
                progressed = await store.get(job.id)
                for status in (ImportStatus.EXTRACTED, ImportStatus.RESOLVED):
                    await store.transition(job.id, status)
                ready = await store.transition(job.id, ImportStatus.PREVIEW_READY, result={"preview": {"matched": []}})
                return created, progressed, ready

        created, progressed, ready = asyncio.run(scenario())

        assert created.status == ImportStatus.UPLOADED
        assert created.statement_month == MARCH
        assert created.document_name == "march.xlsx"
        assert created.progress["step"] == "validating"
        assert created.created_at is not None
        assert progressed.progress == {"step": "extracting", "message": "Reading march.xlsx", "percent": 25}
        assert ready.status == ImportStatus.PREVIEW_READY
        assert ready.result == {"preview": {"matched": []}}

    def test_illegal_transition_leaves_state_unchanged(self, database_url):
        """Test a forbidden move raises and changes nothing."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await store.create(ORG, USER, "statement-1", MARCH, "march.xlsx")
                with pytest.raises(InvalidTransition) as excinfo:
                    await store.transition(job.id, ImportStatus.COMMITTING)
                return excinfo.value, await store.get(job.id)

        error, job = asyncio.run(scenario())

        assert error.current == "uploaded"
        assert error.requested == "committing"
        assert "cannot move from uploaded to committing" in error.user_message
        assert job.status == ImportStatus.UPLOADED

    def test_terminal_job_cannot_move(self, database_url):
        """Test failed jobs stay failed and keep their error."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await store.create(ORG, USER, "statement-1", MARCH, "invoice.pdf")
                failed = await store.transition(job.id, ImportStatus.FAILED, error="AI service timed out")
                with pytest.raises(InvalidTransition):
                    await store.transition(job.id, ImportStatus.CANCELLED)
                return failed

        failed = asyncio.run(scenario())

        assert failed.status == ImportStatus.FAILED
        assert failed.error == "AI service timed out"

    def test_unknown_job(self, database_url):
        """Test missing jobs."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                missing = await store.get("no-such-job")
                await store.update_progress("no-such-job", "x", "ignored")
                with pytest.raises(NotFoundError):
                    await store.transition("no-such-job", ImportStatus.FAILED)
                return missing

        assert asyncio.run(scenario()) is None

    def test_job_visible_to_another_store(self, database_url):
        """Test state survives a new store and engine (another process)."""

        async def scenario():
            async with open_database(database_url) as database:
                job = await ImportJobStore(database.session_factory).create(ORG, USER, "s1", MARCH, "a.csv")
            async with open_database(database_url) as database:
                return await ImportJobStore(database.session_factory).get(job.id)

        job = asyncio.run(scenario())

        assert job is not None
        data = job.to_dict()
        assert data["status"] == "uploaded"
        assert data["statementMonth"] == "2025-03-01"
        assert data["organizationId"] == ORG
        assert data["createdAt"] is not None


class TestCommitClaim:
    """Test the commit claim that serializes confirms of one import."""

    @staticmethod
    async def ready_job(store):
        job = await store.create(ORG, USER, "statement-1", MARCH, "march.xlsx")
        for status in (ImportStatus.EXTRACTED, ImportStatus.RESOLVED, ImportStatus.PREVIEW_READY):
            await store.transition(job.id, status)
        return job

    def test_second_claim_is_refused_until_released(self, database_url):
        """Test only one confirm holds the claim at a time."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await self.ready_job(store)
                claimed, token = await store.claim_commit(job.id, "digest-a", progress={"step": "committing"})
                with pytest.raises(CommitInProgress) as excinfo:
                    await store.claim_commit(job.id, "digest-a")
                await store.release_commit(job.id, token)
                _, second_token = await store.claim_commit(job.id, "digest-a")
                return claimed, token, excinfo.value, second_token

        claimed, token, error, second_token = asyncio.run(scenario())

        assert claimed.status == ImportStatus.COMMITTING
        assert claimed.progress == {"step": "committing"}
        assert error.retryable
        assert second_token != token

    def test_release_with_another_token_keeps_the_claim(self, database_url):
        """Test a finished confirm cannot release a claim it no longer holds."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await self.ready_job(store)
                await store.claim_commit(job.id, "digest-a")
                await store.release_commit(job.id, "someone-else")
                with pytest.raises(CommitInProgress):
                    await store.claim_commit(job.id, "digest-a")

        asyncio.run(scenario())

    def test_resume_must_carry_the_same_rows(self, database_url):
        """Test a different digest is refused unless the attempt saved nothing."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await self.ready_job(store)
                _, token = await store.claim_commit(job.id, "digest-a")
                await store.release_commit(job.id, token)
                with pytest.raises(ValidationError) as excinfo:
                    await store.claim_commit(job.id, "digest-b")

                _, token = await store.claim_commit(job.id, "digest-a")
                await store.release_commit(job.id, token, forget_rows=True)
                resumed, _ = await store.claim_commit(job.id, "digest-b")
                return excinfo.value, resumed

        error, resumed = asyncio.run(scenario())

        assert "different approval" in error.user_message
        assert resumed.status == ImportStatus.COMMITTING

    def test_abandoned_claim_can_be_taken_over(self, database_url, monkeypatch):
        """Test a claim older than the lease no longer blocks a resume."""
        monkeypatch.setattr(jobs_module, "COMMIT_LEASE", timedelta(seconds=-1))

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await self.ready_job(store)
                _, first = await store.claim_commit(job.id, "digest-a")
                _, second = await store.claim_commit(job.id, "digest-a")
                return first, second

        first, second = asyncio.run(scenario())

        assert first != second

    def test_claim_needs_a_committable_job(self, database_url):
        """Test cancelled and unknown jobs cannot be claimed."""

        async def scenario():
            async with open_database(database_url) as database:
                store = ImportJobStore(database.session_factory)
                job = await self.ready_job(store)
                await store.transition(job.id, ImportStatus.CANCELLED)
                with pytest.raises(InvalidTransition) as excinfo:
                    await store.claim_commit(job.id, "digest-a")
                with pytest.raises(NotFoundError):
                    await store.claim_commit("no-such-job", "digest-a")
                return excinfo.value, await store.get(job.id)

        error, job = asyncio.run(scenario())

        assert error.current == "cancelled"
        assert job.status == ImportStatus.CANCELLED
