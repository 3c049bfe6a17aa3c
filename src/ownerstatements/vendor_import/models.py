#!/usr/bin/env python3
"""
Vendor Import Data Models

Ephemeral types flowing through one import: extracted line items, preview
groups, the preview itself (ImportSession), the human-approved confirm
request and the commit result.

Amounts are Money (integer cents) everywhere; JSON carries major-unit numbers
and is converted at from_dict/to_dict.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import PurePath
from typing import Any

from ..core.dates import FinancialDate
from ..core.models import CanonicalProperty
from ..core.money import Money
from .errors import ValidationError


class DocumentType(Enum):
    """Supported vendor document kinds."""

    PDF = "pdf"
    SPREADSHEET = "spreadsheet"

    @classmethod
    def from_filename(cls, filename: str) -> "DocumentType":
        """
        Detect the document type from its file extension.

        Raises:
            ValidationError: For unsupported extensions
        """
        suffix = PurePath(filename).suffix.lower()
        if suffix == ".pdf":
            return cls.PDF
        if suffix in SPREADSHEET_EXTENSIONS:
            return cls.SPREADSHEET
        raise ValidationError(
            f'Unsupported file type "{suffix or filename}". Upload a PDF, .xlsx, .xls or .csv file.'
        )


SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".csv")


@dataclass(frozen=True)
class ExpenseLine:
    """
    One expense as shown in a preview and sent back on confirm.

    A missing date is filled with the statement month's default day at commit.
    """

    vendor: str
    description: str
    amount: Money
    date: FinancialDate | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict with amount in major units."""
        return {
            "date": self.date.to_iso_string() if self.date else "",
            "vendor": self.vendor,
            "description": self.description,
            "amount": self.amount.to_json_number(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpenseLine":
        """
        Create from a JSON expense object.

        Raises:
            ValidationError: If the amount or date is malformed
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Each expense must be a JSON object, got {data!r}")
        try:
            amount = Money.from_dollars(data.get("amount"))
        except ValueError as e:
            raise ValidationError(f"Invalid expense amount {data.get('amount')!r}") from e
        try:
            expense_date = FinancialDate.from_value(data.get("date"))
        except ValueError as e:
            raise ValidationError(f"Invalid expense date {data.get('date')!r}") from e
        return cls(
            vendor=str(data.get("vendor") or "").strip(),
            description=str(data.get("description") or "").strip(),
            amount=amount,
            date=expense_date,
        )


@dataclass(frozen=True)
class ExtractedLineItem:
    """
    One charge read from a document, before resolution. Never persisted.

    Args:
        raw_property: Property name or address exactly as written in the document
        source_row: 1-based sheet row for spreadsheets, None for PDFs
    """

    raw_property: str
    amount: Money
    vendor: str
    description: str
    date: FinancialDate | None = None
    source_row: int | None = None

    def to_expense_line(self) -> ExpenseLine:
        return ExpenseLine(vendor=self.vendor, description=self.description, amount=self.amount, date=self.date)


def _total(expenses: tuple[ExpenseLine, ...]) -> Money:
    return Money.total(expense.amount for expense in expenses)


@dataclass(frozen=True)
class MatchedGroup:
    """Expenses whose identifiers resolved to one canonical property."""

    property: CanonicalProperty
    confidence: float
    reason: str | None
    identifiers: tuple[str, ...]
    expenses: tuple[ExpenseLine, ...]

    @property
    def total_amount(self) -> Money:
        return _total(self.expenses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "property": self.property.to_dict(),
            "confidence": self.confidence,
            "reason": self.reason,
            "identifiers": list(self.identifiers),
            "expenses": [expense.to_dict() for expense in self.expenses],
            "totalAmount": self.total_amount.to_json_number(),
        }


@dataclass(frozen=True)
class UnmatchedGroup:
    """Expenses of one raw identifier that resolved to no property."""

    property_name: str
    expenses: tuple[ExpenseLine, ...]

    @property
    def total_amount(self) -> Money:
        return _total(self.expenses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "propertyName": self.property_name,
            "expenses": [expense.to_dict() for expense in self.expenses],
            "totalAmount": self.total_amount.to_json_number(),
        }


@dataclass(frozen=True)
class PreviewSummary:
    """Counts and amounts shown above a preview."""

    matched_property_count: int
    unmatched_property_count: int
    matched_expense_count: int
    unmatched_expense_count: int
    matched_amount: Money
    unmatched_amount: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchedPropertyCount": self.matched_property_count,
            "unmatchedPropertyCount": self.unmatched_property_count,
            "matchedExpenseCount": self.matched_expense_count,
            "unmatchedExpenseCount": self.unmatched_expense_count,
            "matchedAmount": self.matched_amount.to_json_number(),
            "unmatchedAmount": self.unmatched_amount.to_json_number(),
        }


@dataclass(frozen=True)
class ImportSession:
    """
    Preview of one import: matched and unmatched groups plus a summary.

    Exists only between preview and confirm; nothing in it has been written.
    row_errors lists spreadsheet rows that were skipped.
    """

    matched: tuple[MatchedGroup, ...]
    unmatched: tuple[UnmatchedGroup, ...]
    summary: PreviewSummary
    row_errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the preview response shape."""
        return {
            "matched": [group.to_dict() for group in self.matched],
            "unmatched": [group.to_dict() for group in self.unmatched],
            "summary": self.summary.to_dict(),
            "errors": list(self.row_errors),
        }


@dataclass(frozen=True)
class ApprovedMatch:
    """One matched group the user approved for commit."""

    property: CanonicalProperty
    expenses: tuple[ExpenseLine, ...]
    total_amount: Money
    confidence: float = 0.0
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovedMatch":
        """
        Create from a JSON approved match.

        Raises:
            ValidationError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("Each approved match must be a JSON object")
        prop = data.get("property")
        if not isinstance(prop, dict) or not prop.get("id") or not prop.get("name"):
            raise ValidationError("Each approved match needs a property with id and name")
        expenses = data.get("expenses")
        if not isinstance(expenses, list):
            raise ValidationError(f'Approved match for "{prop["name"]}" has no expenses list')
        try:
            total_amount = Money.from_dollars(data.get("totalAmount"))
        except ValueError as e:
            raise ValidationError(f'Invalid totalAmount for "{prop["name"]}"') from e
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError) as e:
            raise ValidationError(f'Invalid confidence for "{prop["name"]}"') from e
        return cls(
            property=CanonicalProperty.from_dict(prop),
            expenses=tuple(ExpenseLine.from_dict(expense) for expense in expenses),
            total_amount=total_amount,
            confidence=confidence,
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class ConfirmRequest:
    """Human-approved subset of a preview."""

    target_statement_id: str
    approved_matches: tuple[ApprovedMatch, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfirmRequest":
        """
        Create from the confirm request JSON.

        Raises:
            ValidationError: If the request is malformed
        """
        if not isinstance(data, dict):
            raise ValidationError("Confirm request must be a JSON object")
        target = data.get("targetStatementId")
        if not target:
            raise ValidationError("Confirm request is missing targetStatementId")
        approved = data.get("approvedMatches")
        if not isinstance(approved, list):
            raise ValidationError("Confirm request is missing approvedMatches")
        return cls(
            target_statement_id=str(target),
            approved_matches=tuple(ApprovedMatch.from_dict(match) for match in approved),
        )


@dataclass(frozen=True)
class ProspectiveExpense:
    """
    An Expense row about to be written.

    import_key is "<job id>:<row index>" so a resumed commit can recognise rows
    it already wrote.
    """

    import_key: str
    statement_id: str
    property_name: str
    expense_date: date
    vendor: str
    description: str
    amount: Money

    def to_row(self) -> dict[str, Any]:
        return {
            "import_key": self.import_key,
            "statement_id": self.statement_id,
            "expense_date": self.expense_date,
            "vendor": self.vendor,
            "description": self.description,
            "amount": self.amount.to_cents(),
        }


@dataclass
class CommitResult:
    """Outcome of a successful confirm."""

    created_count: int
    skipped_count: int
    updated_properties: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "createdCount": self.created_count,
            "skippedCount": self.skipped_count,
            "updatedPropertiesCount": len(self.updated_properties),
            "updatedProperties": list(self.updated_properties),
        }
