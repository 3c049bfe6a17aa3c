#!/usr/bin/env python3
"""Tests for StatementRepository queries, bulk inserts and totals."""

import asyncio
from datetime import date

from ownerstatements.core.money import Money
from ownerstatements.storage.repository import StatementRepository
from ownerstatements.storage.tables import Statement, utc_now
from tests.fixtures.datastore import (
    APRIL,
    MARCH,
    ORG,
    OTHER_ORG,
    USER,
    add_statement_rows,
    live_totals,
    open_database,
    seed_month,
    stored_totals,
)


def expense_row(statement_id: str, import_key: str | None, vendor: str = "Acme Pools", amount: int = 5000) -> dict:
    return {
        "statement_id": statement_id,
        "expense_date": date(2025, 3, 15),
        "vendor": vendor,
        "description": "Pool service",
        "amount": amount,
        "import_key": import_key,
    }


class TestMonthStatements:
    """Test month statement lookup."""

    def test_lists_live_statements_for_org_and_month(self, database_url):
        """Test org, month and soft-delete filtering with name ordering."""

        async def scenario():
            async with open_database(database_url) as database:
                march = await seed_month(database, [("Sunset Villa", "12 Ocean Drive"), ("Harbor House", None)])
                await seed_month(database, [("Sunset Villa April", None)], month=APRIL)
                await seed_month(database, [("Other Org Villa", None)], organization_id=OTHER_ORG)
                deleted = await seed_month(database, [("Closed Cottage", None)])

                async with database.session_factory.begin() as session:
                    statement = await session.get(Statement, deleted["Closed Cottage"].statement_id)
                    statement.deleted_at = utc_now()

                async with database.session_factory() as session:
                    # Any day of the month selects the month
                    statements = await StatementRepository(session).list_month_statements(ORG, date(2025, 3, 20))
                return march, statements

        march, statements = asyncio.run(scenario())

        assert [s.property_name for s in statements] == ["Harbor House", "Sunset Villa"]
        sunset = statements[1]
        assert sunset.statement_id == march["Sunset Villa"].statement_id
        assert sunset.property_id == march["Sunset Villa"].property_id
        assert sunset.address == "12 Ocean Drive"

    def test_get_statement_ignores_deleted(self, database_url):
        """Test soft-deleted statements are not returned."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                async with database.session_factory() as session:
                    before = await StatementRepository(session).get_statement(statement_id)
                async with database.session_factory.begin() as session:
                    (await session.get(Statement, statement_id)).deleted_at = utc_now()
                async with database.session_factory() as session:
                    after = await StatementRepository(session).get_statement(statement_id)
                return before, after

        before, after = asyncio.run(scenario())

        assert before is not None
        assert before.statement_month == MARCH
        assert after is None

    def test_live_statement_ids(self, database_url):
        """Test only undeleted statements of the org's month are live."""

        async def scenario():
            async with open_database(database_url) as database:
                march = await seed_month(database, [("Sunset Villa", None), ("Harbor House", None)])
                april = await seed_month(database, [("Sunset Villa April", None)], month=APRIL)
                other = await seed_month(database, [("Other Org Villa", None)], organization_id=OTHER_ORG)
                async with database.session_factory.begin() as session:
                    (await session.get(Statement, march["Harbor House"].statement_id)).deleted_at = utc_now()

                asked = [
                    march["Sunset Villa"].statement_id,
                    march["Harbor House"].statement_id,
                    april["Sunset Villa April"].statement_id,
                    other["Other Org Villa"].statement_id,
                    "no-such-statement",
                ]
                async with database.session_factory.begin() as session:
                    live = await StatementRepository(session).live_statement_ids(
                        asked, ORG, date(2025, 3, 31), for_update=True
                    )
                return march, live

        march, live = asyncio.run(scenario())

        assert live == {march["Sunset Villa"].statement_id}


class TestExpenseExistence:
    """Test duplicate lookups by vendor and description."""

    def test_exact_vendor_and_description_within_month(self, database_url):
        """Test existence is scoped to org and month and matches exactly."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None), ("Harbor House", None)])
                await add_statement_rows(
                    database, seeded["Harbor House"].statement_id, expenses=(("Acme Pools", "Pool service", "80.00"),)
                )
                async with database.session_factory() as session:
                    repository = StatementRepository(session)
                    return {
                        "march": await repository.expense_exists(ORG, MARCH, "Acme Pools", "Pool service"),
                        "april": await repository.expense_exists(ORG, APRIL, "Acme Pools", "Pool service"),
                        "other_org": await repository.expense_exists(OTHER_ORG, MARCH, "Acme Pools", "Pool service"),
                        "case": await repository.expense_exists(ORG, MARCH, "acme pools", "Pool service"),
                        "description": await repository.expense_exists(ORG, MARCH, "Acme Pools", "Cleaning"),
                        "names": await repository.properties_with_expense(ORG, MARCH, "Acme Pools", "Pool service"),
                    }

        found = asyncio.run(scenario())

        assert found["march"] is True
        assert found["april"] is False
        assert found["other_org"] is False
        assert found["case"] is False
        assert found["description"] is False
        assert found["names"] == ["Harbor House"]

    def test_exclude_import_prefix(self, database_url):
        """Test an import's own rows can be ignored."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                async with database.session_factory.begin() as session:
                    await StatementRepository(session).insert_expenses([expense_row(statement_id, "job-1:0")])
                async with database.session_factory() as session:
                    repository = StatementRepository(session)
                    return (
                        await repository.expense_exists(ORG, MARCH, "Acme Pools", "Pool service"),
                        await repository.expense_exists(ORG, MARCH, "Acme Pools", "Pool service", "job-1:"),
                        await repository.expense_exists(ORG, MARCH, "Acme Pools", "Pool service", "job-2:"),
                    )

        plain, own_job, other_job = asyncio.run(scenario())

        assert plain is True
        assert own_job is False
        assert other_job is True


class TestInsertExpenses:
    """Test bulk inserts keyed by import_key."""

    def test_already_committed_keys_are_skipped(self, database_url):
        """Test re-inserting a key never creates a second row."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                async with database.session_factory.begin() as session:
                    first = await StatementRepository(session).insert_expenses(
                        [expense_row(statement_id, "job-1:0"), expense_row(statement_id, "job-1:1")]
                    )
                async with database.session_factory.begin() as session:
                    second = await StatementRepository(session).insert_expenses(
                        [
                            expense_row(statement_id, "job-1:1"),
                            expense_row(statement_id, "job-1:2"),
                            expense_row(statement_id, "job-10:0"),
                        ]
                    )
                async with database.session_factory() as session:
                    repository = StatementRepository(session)
                    return (
                        first,
                        second,
                        await repository.count_expenses(statement_id),
                        await repository.committed_import_keys("job-1:"),
                    )

        first, second, count, keys = asyncio.run(scenario())

        assert first == 2
        assert second == 2
        assert count == 4
        assert keys == {"job-1:0", "job-1:1", "job-1:2"}

    def test_rows_without_keys_always_insert(self, database_url):
        """Test hand-entered style rows carry no import key."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                async with database.session_factory.begin() as session:
                    repository = StatementRepository(session)
                    inserted = await repository.insert_expenses(
                        [expense_row(statement_id, None), expense_row(statement_id, None)]
                    )
                    empty = await repository.insert_expenses([])
                async with database.session_factory() as session:
                    expenses = await StatementRepository(session).list_expenses(statement_id)
                return inserted, empty, expenses

        inserted, empty, expenses = asyncio.run(scenario())

        assert inserted == 2
        assert empty == 0
        assert len(expenses) == 2
        assert all(expense.expense_date == date(2025, 3, 15) for expense in expenses)
        assert all(expense.amount == 5000 for expense in expenses)

    def test_count_is_rows_actually_written(self, database_url):
        """Test a key that clashes inside one insert is counted once."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                async with database.session_factory.begin() as session:
                    inserted = await StatementRepository(session).insert_expenses(
                        [
                            expense_row(statement_id, "job-1:0", amount=5000),
                            expense_row(statement_id, "job-1:0", amount=7000),
                            expense_row(statement_id, "job-1:1"),
                        ]
                    )
                async with database.session_factory() as session:
                    return inserted, await StatementRepository(session).count_expenses(statement_id)

        inserted, count = asyncio.run(scenario())

        assert inserted == 2
        assert count == 2


class TestRecomputeTotals:
    """Test statement total recomputation."""

    def test_totals_follow_child_rows(self, database_url):
        """Test all four totals and the acting user are written."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [("Sunset Villa", None)])
                statement_id = seeded["Sunset Villa"].statement_id
                written = await add_statement_rows(
                    database,
                    statement_id,
                    incomes=("1000.00", "250.50"),
                    expenses=(("Acme Pools", "Pool service", "150.25"),),
                    adjustments=("-20.00",),
                )
                async with database.session_factory() as session:
                    statement = await session.get(Statement, statement_id)
                return written, await stored_totals(database, statement_id), statement.updated_by

        written, stored, updated_by = asyncio.run(scenario())

        assert written == stored
        assert stored.total_income == Money.from_dollars("1250.50")
        assert stored.total_expenses == Money.from_dollars("150.25")
        assert stored.total_adjustments == Money.from_dollars("-20.00")
        assert stored.grand_total == Money.from_dollars("1080.25")
        assert updated_by == USER

    def test_batches_cover_every_statement(self, database_url):
        """Test batching never skips a statement, including empty ones."""

        async def scenario():
            async with open_database(database_url) as database:
                seeded = await seed_month(database, [(f"Property {n}", None) for n in range(7)])
                ids = [prop.statement_id for prop in seeded.values()]
                async with database.session_factory.begin() as session:
                    repository = StatementRepository(session)
                    for n, statement_id in enumerate(ids):
                        await repository.add_expense(
                            statement_id, date(2025, 3, 1), "Acme", "Service", Money.from_cents(100 * (n + 1))
                        )
                async with database.session_factory.begin() as session:
                    written = await StatementRepository(session).recompute_totals(ids, USER, batch_size=3)
                return ids, written, [await stored_totals(database, i) for i in ids], [
                    await live_totals(database, i) for i in ids
                ]

        ids, written, stored, live = asyncio.run(scenario())

        assert set(written) == set(ids)
        assert stored == live
        assert stored[6].total_expenses == Money.from_cents(700)
        assert stored[6].grand_total == Money.from_cents(-700)
