#!/usr/bin/env python3
"""
Datastore Test Helpers

Seeds properties and month statements into a throwaway SQLite datastore and
reads back totals for consistency checks.

Every helper is async; each test drives one scenario coroutine with
asyncio.run() so the engine never crosses event loops.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select

from ownerstatements.core.models import StatementTotals
from ownerstatements.core.money import Money
from ownerstatements.storage.db import Database
from ownerstatements.storage.repository import StatementRepository
from ownerstatements.storage.tables import Adjustment, Expense, Income, Statement

ORG = "org-sunrise"
OTHER_ORG = "org-elsewhere"
USER = "user-manager"
MARCH = date(2025, 3, 1)
APRIL = date(2025, 4, 1)


@dataclass
class SeededProperty:
    property_id: str
    statement_id: str
    name: str
    address: str | None


@asynccontextmanager
async def open_database(url: str) -> AsyncIterator[Database]:
    """Create the schema and dispose the engine afterwards."""
    database = Database(url)
    await database.init_db()
    try:
        yield database
    finally:
        await database.dispose()


async def seed_month(
    database: Database,
    properties: list[tuple[str, str | None]],
    organization_id: str = ORG,
    month: date = MARCH,
) -> dict[str, SeededProperty]:
    """Create each (name, address) property with an empty statement for the month."""
    seeded = {}
    async with database.session_factory.begin() as session:
        repository = StatementRepository(session)
        for name, address in properties:
            prop = await repository.add_property(organization_id, name, address)
            statement = await repository.add_statement(organization_id, prop.id, month, created_by=USER)
            seeded[name] = SeededProperty(prop.id, statement.id, name, address)
    return seeded


async def add_statement_rows(
    database: Database,
    statement_id: str,
    incomes: tuple[str, ...] = (),
    expenses: tuple[tuple[str, str, str], ...] = (),
    adjustments: tuple[str, ...] = (),
    expense_date: date = date(2025, 3, 10),
) -> StatementTotals:
    """
    Add hand-entered rows to a statement and recompute its totals.

    Args:
        incomes: Gross income amounts
        expenses: (vendor, description, amount) tuples
        adjustments: Adjustment amounts
    """
    async with database.session_factory.begin() as session:
        repository = StatementRepository(session)
        for amount in incomes:
            await repository.add_income(statement_id, "Guest", Money.from_dollars(amount))
        for vendor, description, amount in expenses:
            await repository.add_expense(statement_id, expense_date, vendor, description, Money.from_dollars(amount))
        for amount in adjustments:
            await repository.add_adjustment(statement_id, "Adjustment", Money.from_dollars(amount))
        totals = await repository.recompute_totals([statement_id], USER)
    return totals[statement_id]


async def stored_totals(database: Database, statement_id: str) -> StatementTotals:
    """The four totals as stored on the statement row."""
    async with database.session_factory() as session:
        statement = await session.get(Statement, statement_id)
        return StatementTotals(
            total_income=Money.from_cents(statement.total_income),
            total_expenses=Money.from_cents(statement.total_expenses),
            total_adjustments=Money.from_cents(statement.total_adjustments),
            grand_total=Money.from_cents(statement.grand_total),
        )


async def live_totals(database: Database, statement_id: str) -> StatementTotals:
    """The four totals recalculated from the statement's child rows."""

    async def column_sum(session, column, owner) -> Money:
        total = await session.scalar(select(func.coalesce(func.sum(column), 0)).where(owner == statement_id))
        return Money.from_cents(int(total))

    async with database.session_factory() as session:
        return StatementTotals.calculate(
            incomes=[await column_sum(session, Income.gross_income, Income.statement_id)],
            expenses=[await column_sum(session, Expense.amount, Expense.statement_id)],
            adjustments=[await column_sum(session, Adjustment.amount, Adjustment.statement_id)],
        )


async def list_expenses(database: Database, statement_id: str) -> list[Expense]:
    async with database.session_factory() as session:
        return await StatementRepository(session).list_expenses(statement_id)
