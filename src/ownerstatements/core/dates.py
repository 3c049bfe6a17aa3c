#!/usr/bin/env python3
"""
FinancialDate Primitive Type and Statement Month Helpers

Immutable date wrapper with consistent formatting for financial operations,
plus the calendar-month helpers used to key statements and caches.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd


@dataclass(frozen=True)
class FinancialDate:
    """Immutable financial date wrapper with consistent formatting."""

    date: date

    @classmethod
    def from_string(cls, date_str: str, format: str = "%Y-%m-%d") -> "FinancialDate":
        """
        Parse from string in specified format.

        Args:
            date_str: Date string to parse
            format: Date format (default: ISO format "%Y-%m-%d")

        Returns:
            FinancialDate object
        """
        return cls(date=datetime.strptime(date_str, format).date())

    @classmethod
    def from_value(cls, value: Any) -> "FinancialDate | None":
        """
        Coerce a spreadsheet cell or AI-reported date into a FinancialDate.

        Accepts date/datetime/pandas Timestamp objects and free-form date
        strings. Empty values return None.

        Raises:
            ValueError: If a non-empty value cannot be read as a date
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return cls(date=value.date())
        if isinstance(value, date):
            return cls(date=value)

        text = str(value).strip()
        if not text or text.lower() in ("nan", "nat", "none"):
            return None

        try:
            return cls.from_string(text)
        except ValueError:
            pass

        parsed = pd.to_datetime(text, errors="coerce")
        if parsed is pd.NaT or pd.isna(parsed):
            raise ValueError(f'Invalid date "{text}"')
        return cls(date=parsed.date())

    @classmethod
    def today(cls) -> "FinancialDate":
        """Get today's date."""
        return cls(date=date.today())

    def to_iso_string(self) -> str:
        """Format as YYYY-MM-DD."""
        return self.date.isoformat()

    def month_key(self) -> str:
        """Format the calendar month as YYYY-MM."""
        return month_key(self.date)

    def __str__(self) -> str:
        """String representation."""
        return self.to_iso_string()

    def __eq__(self, other: object) -> bool:
        """Check equality."""
        if not isinstance(other, FinancialDate):
            return NotImplemented
        return self.date == other.date

    def __lt__(self, other: "FinancialDate") -> bool:
        """Less than comparison."""
        return self.date < other.date

    def __le__(self, other: "FinancialDate") -> bool:
        """Less than or equal comparison."""
        return self.date <= other.date

    def __gt__(self, other: "FinancialDate") -> bool:
        """Greater than comparison."""
        return self.date > other.date

    def __ge__(self, other: "FinancialDate") -> bool:
        """Greater than or equal comparison."""
        return self.date >= other.date

    def __repr__(self) -> str:
        """Repr format."""
        return f"FinancialDate(date={self.date!r})"


def month_start(value: date) -> date:
    """First day of the calendar month containing value."""
    return date(value.year, value.month, 1)


def month_key(value: date) -> str:
    """Calendar month of value as YYYY-MM, used in cache keys."""
    return f"{value.year:04d}-{value.month:02d}"


def default_expense_date(statement_month: date, day: int = 15) -> FinancialDate:
    """
    Date used for imported expenses that carry no date of their own.

    Args:
        statement_month: Any date within the statement month
        day: Day of month (default: the 15th)
    """
    return FinancialDate(date=month_start(statement_month).replace(day=day))
