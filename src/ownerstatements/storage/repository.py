#!/usr/bin/env python3
"""
Statement Repository

Datastore queries used by the vendor import pipeline: month statement lookup,
expense existence checks, bulk expense insertion and statement total
recomputation. The repository works inside the caller's session and never
commits; transaction boundaries belong to the caller.
"""

import logging
from collections.abc import Iterable
from datetime import date

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dates import month_start
from ..core.models import MonthStatement, StatementTotals
from ..core.money import Money
from .tables import Adjustment, Expense, Income, Property, Statement, new_id, utc_now

logger = logging.getLogger(__name__)


def _batched(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class StatementRepository:
    """
    Statement and expense access for one session.

    Args:
        session: Active async session owned by the caller
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Lookups

    async def get_statement(self, statement_id: str) -> Statement | None:
        """Get a non-deleted statement by id."""
        return await self.session.scalar(
            select(Statement).where(Statement.id == statement_id, Statement.deleted_at.is_(None))
        )

    async def list_month_statements(self, organization_id: str, month: date) -> list[MonthStatement]:
        """
        List the organization's live statements for a calendar month, with
        their property name and address, ordered by property name.
        """
        rows = await self.session.execute(
            select(Statement.id, Property.id, Property.name, Property.address)
            .join(Property, Property.id == Statement.property_id)
            .where(
                Statement.organization_id == organization_id,
                Statement.statement_month == month_start(month),
                Statement.deleted_at.is_(None),
            )
            .order_by(Property.name, Statement.id)
        )
        return [
            MonthStatement(statement_id=statement_id, property_id=property_id, property_name=name, address=address)
            for statement_id, property_id, name, address in rows
        ]

    def _month_expense_query(
        self,
        organization_id: str,
        month: date,
        vendor: str,
        description: str,
        exclude_import_prefix: str | None,
    ):
        conditions = [
            Statement.organization_id == organization_id,
            Statement.statement_month == month_start(month),
            Statement.deleted_at.is_(None),
            Expense.vendor == vendor,
            Expense.description == description,
        ]
        if exclude_import_prefix:
            conditions.append(
                or_(
                    Expense.import_key.is_(None),
                    ~Expense.import_key.startswith(exclude_import_prefix, autoescape=True),
                )
            )
        return conditions

    async def expense_exists(
        self,
        organization_id: str,
        month: date,
        vendor: str,
        description: str,
        exclude_import_prefix: str | None = None,
    ) -> bool:
        """
        Check whether any expense with this exact vendor and description exists
        in any statement of the organization's month.

        Args:
            exclude_import_prefix: Ignore rows whose import_key starts with this
                prefix (an import's own rows when it resumes)
        """
        conditions = self._month_expense_query(organization_id, month, vendor, description, exclude_import_prefix)
        found = await self.session.scalar(
            select(Expense.id).join(Statement, Statement.id == Expense.statement_id).where(*conditions).limit(1)
        )
        return found is not None

    async def properties_with_expense(
        self,
        organization_id: str,
        month: date,
        vendor: str,
        description: str,
        exclude_import_prefix: str | None = None,
    ) -> list[str]:
        """Names of properties whose month statement already holds the expense."""
        conditions = self._month_expense_query(organization_id, month, vendor, description, exclude_import_prefix)
        names = await self.session.scalars(
            select(Property.name)
            .distinct()
            .join(Statement, Statement.property_id == Property.id)
            .join(Expense, Expense.statement_id == Statement.id)
            .where(*conditions)
            .order_by(Property.name)
        )
        return list(names)

    async def committed_import_keys(self, import_prefix: str) -> set[str]:
        """All import keys already stored for one import (keys starting with the prefix)."""
        keys = await self.session.scalars(
            select(Expense.import_key).where(Expense.import_key.startswith(import_prefix, autoescape=True))
        )
        return set(keys)

    async def live_statement_ids(
        self, statement_ids: Iterable[str], organization_id: str, month: date, for_update: bool = False
    ) -> set[str]:
        """
        The ids among statement_ids that are live statements of the
        organization's month.

        Args:
            for_update: Lock the rows until the caller's transaction ends, so a
                concurrent delete waits for the write that checked them
        """
        query = select(Statement.id).where(
            Statement.id.in_(sorted(set(statement_ids))),
            Statement.organization_id == organization_id,
            Statement.statement_month == month_start(month),
            Statement.deleted_at.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        return set(await self.session.scalars(query))

    async def list_expenses(self, statement_id: str) -> list[Expense]:
        """Expenses of one statement ordered by date."""
        expenses = await self.session.scalars(
            select(Expense).where(Expense.statement_id == statement_id).order_by(Expense.expense_date, Expense.id)
        )
        return list(expenses)

    async def count_expenses(self, statement_id: str) -> int:
        """Number of expense rows on one statement."""
        return await self.session.scalar(
            select(func.count()).select_from(Expense).where(Expense.statement_id == statement_id)
        )

    # Writes

    async def insert_expenses(self, rows: list[dict]) -> int:
        """
        Bulk-insert prospective expense rows.

        Rows whose import_key is already stored are skipped, both by a lookup
        before the insert and by ON CONFLICT DO NOTHING on dialects that
        support it. Only rows the database actually wrote are counted, so a
        concurrent writer that got there first is not reported twice.

        Args:
            rows: Dicts with statement_id, expense_date, vendor, description,
                amount (cents) and import_key

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0

        keys = [row["import_key"] for row in rows if row.get("import_key")]
        existing: set[str] = set()
        if keys:
            existing = set(
                await self.session.scalars(select(Expense.import_key).where(Expense.import_key.in_(keys)))
            )
        if existing:
            logger.info("Skipping %d already-committed expense rows", len(existing))

        values = [
            {
                "id": new_id(),
                "statement_id": row["statement_id"],
                "date": row["expense_date"],
                "vendor": row["vendor"],
                "description": row["description"],
                "amount": row["amount"],
                "import_key": row.get("import_key"),
                "created_at": utc_now(),
            }
            for row in rows
            if row.get("import_key") not in existing
        ]
        if not values:
            return 0

        table = Expense.__table__
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            statement = sqlite.insert(table).on_conflict_do_nothing(index_elements=["import_key"])
        elif dialect == "postgresql":
            statement = postgresql.insert(table).on_conflict_do_nothing(index_elements=["import_key"])
        else:
            # No conflict clause here, so a clash raises instead of being skipped
            await self.session.execute(insert(table), values)
            return len(values)

        written = await self.session.execute(statement.returning(table.c.id), values)
        inserted = len(written.all())
        if inserted < len(values):
            logger.info("Skipped %d expense rows another commit already wrote", len(values) - inserted)
        return inserted

    async def recompute_totals(
        self,
        statement_ids: Iterable[str],
        acting_user_id: str | None,
        batch_size: int = 5,
    ) -> dict[str, StatementTotals]:
        """
        Recompute the four totals of each statement from its live child rows
        and write them back with the acting user and timestamp.

        Statements are aggregated batch_size at a time with one grouped SUM
        query per child table, so each batch costs three reads regardless of
        its size. Sums are exact integer cents.

        Returns:
            Totals written, by statement id
        """
        ids = sorted(set(statement_ids))
        written: dict[str, StatementTotals] = {}

        for batch in _batched(ids, batch_size):
            incomes = await self._sum_by_statement(Income.statement_id, Income.gross_income, batch)
            expenses = await self._sum_by_statement(Expense.statement_id, Expense.amount, batch)
            adjustments = await self._sum_by_statement(Adjustment.statement_id, Adjustment.amount, batch)

            now = utc_now()
            for statement_id in batch:
                totals = StatementTotals.calculate(
                    incomes=[Money.from_cents(incomes.get(statement_id, 0))],
                    expenses=[Money.from_cents(expenses.get(statement_id, 0))],
                    adjustments=[Money.from_cents(adjustments.get(statement_id, 0))],
                )
                await self.session.execute(
                    update(Statement)
                    .where(Statement.id == statement_id)
                    .values(
                        total_income=totals.total_income.to_cents(),
                        total_expenses=totals.total_expenses.to_cents(),
                        total_adjustments=totals.total_adjustments.to_cents(),
                        grand_total=totals.grand_total.to_cents(),
                        updated_by=acting_user_id,
                        updated_at=now,
                    )
                )
                written[statement_id] = totals

        logger.debug("Recomputed totals for %d statements", len(written))
        return written

    async def _sum_by_statement(self, statement_column, amount_column, statement_ids: list[str]) -> dict[str, int]:
        rows = await self.session.execute(
            select(statement_column, func.coalesce(func.sum(amount_column), 0))
            .where(statement_column.in_(statement_ids))
            .group_by(statement_column)
        )
        return {statement_id: int(total) for statement_id, total in rows}

    # Seeding helpers for statement setup outside the import pipeline

    async def add_property(self, organization_id: str, name: str, address: str | None = None) -> Property:
        """Create a property."""
        prop = Property(organization_id=organization_id, name=name, address=address)
        self.session.add(prop)
        await self.session.flush()
        return prop

    async def add_statement(
        self, organization_id: str, property_id: str, month: date, created_by: str | None = None
    ) -> Statement:
        """Create an empty statement for the property's calendar month."""
        statement = Statement(
            organization_id=organization_id,
            property_id=property_id,
            statement_month=month_start(month),
            created_by=created_by,
            updated_by=created_by,
        )
        self.session.add(statement)
        await self.session.flush()
        return statement

    async def add_income(self, statement_id: str, guest: str, gross_income: Money) -> Income:
        """Add an income row (totals are not recomputed)."""
        income = Income(statement_id=statement_id, guest=guest, gross_income=gross_income.to_cents())
        self.session.add(income)
        await self.session.flush()
        return income

    async def add_expense(
        self, statement_id: str, expense_date: date, vendor: str, description: str, amount: Money
    ) -> Expense:
        """Add a hand-entered expense row (totals are not recomputed)."""
        expense = Expense(
            statement_id=statement_id,
            expense_date=expense_date,
            vendor=vendor,
            description=description,
            amount=amount.to_cents(),
        )
        self.session.add(expense)
        await self.session.flush()
        return expense

    async def add_adjustment(self, statement_id: str, description: str, amount: Money) -> Adjustment:
        """Add an adjustment row (totals are not recomputed)."""
        adjustment = Adjustment(statement_id=statement_id, description=description, amount=amount.to_cents())
        self.session.add(adjustment)
        await self.session.flush()
        return adjustment
