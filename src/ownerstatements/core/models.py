#!/usr/bin/env python3
"""
Core Data Models for Owner Statements

Common data structures shared by the datastore, cache and vendor import pipeline.
These models provide type safety and consistent interfaces for statement data.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .money import Money


class MatchMethod(Enum):
    """Resolver stage that produced a match."""

    EXACT = "exact"
    NORMALIZED = "normalized"
    LLM = "llm"
    SIMILARITY = "similarity"
    NONE = "none"


@dataclass(frozen=True)
class CanonicalProperty:
    """
    Authoritative property record that extracted identifiers resolve against.
    """

    id: str
    name: str
    address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"id": self.id, "name": self.name, "address": self.address}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanonicalProperty":
        """Create CanonicalProperty from dictionary."""
        return cls(id=str(data["id"]), name=str(data["name"]), address=data.get("address"))


@dataclass(frozen=True)
class MonthStatement:
    """
    One statement in an organization's month, joined with its property.

    This is the shape cached under the monthStatements relation.
    """

    statement_id: str
    property_id: str
    property_name: str
    address: str | None = None

    @property
    def canonical_property(self) -> CanonicalProperty:
        """The statement's property as a match candidate."""
        return CanonicalProperty(id=self.property_id, name=self.property_name, address=self.address)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for cache storage."""
        return {
            "statementId": self.statement_id,
            "propertyId": self.property_id,
            "propertyName": self.property_name,
            "address": self.address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonthStatement":
        """Create MonthStatement from cached dictionary."""
        return cls(
            statement_id=data["statementId"],
            property_id=data["propertyId"],
            property_name=data["propertyName"],
            address=data.get("address"),
        )


@dataclass(frozen=True)
class MatchResult:
    """
    Resolution of one raw property identifier.

    An unmatched identifier has property_id None and confidence 0.0.
    AI-produced results are advisory only; nothing is written from them
    without an explicit human approval.
    """

    identifier: str
    property_id: str | None
    confidence: float = 0.0
    reason: str | None = None
    method: MatchMethod = MatchMethod.NONE

    @classmethod
    def unmatched(cls, identifier: str, reason: str | None = None) -> "MatchResult":
        """Create an unmatched result."""
        return cls(identifier=identifier, property_id=None, confidence=0.0, reason=reason)

    @property
    def is_matched(self) -> bool:
        """True if the identifier resolved to a property."""
        return self.property_id is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert match result to dict for JSON serialization."""
        return {
            "identifier": self.identifier,
            "propertyId": self.property_id,
            "confidence": self.confidence,
            "reason": self.reason,
            "method": self.method.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchResult":
        """Create MatchResult from dictionary."""
        return cls(
            identifier=data["identifier"],
            property_id=data.get("propertyId"),
            confidence=float(data.get("confidence", 0.0)),
            reason=data.get("reason"),
            method=MatchMethod(data.get("method", MatchMethod.NONE.value)),
        )


@dataclass(frozen=True)
class StatementTotals:
    """
    The four aggregate totals held on a statement.

    grand_total is always total_income - total_expenses + total_adjustments.
    """

    total_income: Money
    total_expenses: Money
    total_adjustments: Money
    grand_total: Money

    @classmethod
    def calculate(
        cls,
        incomes: Iterable[Money],
        expenses: Iterable[Money],
        adjustments: Iterable[Money],
    ) -> "StatementTotals":
        """
        Calculate totals from the live child amounts of a statement.

        Sums are exact integer-cent sums; no intermediate rounding occurs.
        """
        total_income = Money.total(incomes)
        total_expenses = Money.total(expenses)
        total_adjustments = Money.total(adjustments)
        return cls(
            total_income=total_income,
            total_expenses=total_expenses,
            total_adjustments=total_adjustments,
            grand_total=total_income - total_expenses + total_adjustments,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict with amounts in major units."""
        return {
            "totalIncome": self.total_income.to_json_number(),
            "totalExpenses": self.total_expenses.to_json_number(),
            "totalAdjustments": self.total_adjustments.to_json_number(),
            "grandTotal": self.grand_total.to_json_number(),
        }


@dataclass
class ProcessingResult:
    """
    Result of processing a batch of rows.

    Contains summary statistics and details about the processing operation.
    """

    total_processed: int
    successful: int
    failed: int
    errors: list[str] = field(default_factory=list)
