#!/usr/bin/env python3
"""
Money Primitive Type

Immutable currency value wrapper that uses integer cents internally.
Prevents floating-point errors and provides type-safe currency operations.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .currency import (
    cents_to_decimal,
    format_cents,
    parse_amount_to_cents,
)


@dataclass(frozen=True)
class Money:
    """
    Immutable money value in cents (USD).

    Supports both positive (charges) and negative (credits) amounts.
    Uses integer arithmetic throughout to prevent floating-point errors.

    Examples:
        >>> charge = Money.from_dollars("$1,234.56")
        >>> str(charge)
        '$1234.56'

        >>> credit = Money.from_dollars("(50.00)")
        >>> credit.to_cents()
        -5000

        >>> str(charge + credit)
        '$1184.56'
    """

    cents: int

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        """Create Money from cents."""
        return cls(cents=int(cents))

    @classmethod
    def from_dollars(cls, dollars: Any) -> "Money":
        """
        Parse from a dollar amount.

        Args:
            dollars: String like "$12.34" or "(5.00)", or a number in major units

        Returns:
            Money object

        Raises:
            ValueError: If the amount cannot be parsed
        """
        return cls(cents=parse_amount_to_cents(dollars))

    @classmethod
    def zero(cls) -> "Money":
        """Zero amount."""
        return cls(cents=0)

    @classmethod
    def total(cls, amounts: Iterable["Money"]) -> "Money":
        """Exact sum of Money values."""
        return cls(cents=sum(amount.cents for amount in amounts))

    def to_cents(self) -> int:
        """Get value in cents."""
        return self.cents

    def to_decimal(self) -> Decimal:
        """Get value as a two-digit Decimal in major units."""
        return cents_to_decimal(self.cents)

    def to_json_number(self) -> float:
        """
        Get value as a JSON number in major units.

        Only for serialization at the wire boundary; never compute with the result.
        """
        return float(self.to_decimal())

    def __add__(self, other: "Money") -> "Money":
        """Add two Money objects."""
        return Money(cents=self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        """Subtract two Money objects."""
        return Money(cents=self.cents - other.cents)

    def __neg__(self) -> "Money":
        """Negate."""
        return Money(cents=-self.cents)

    def __eq__(self, other: object) -> bool:
        """Check equality."""
        if not isinstance(other, Money):
            return NotImplemented
        return self.cents == other.cents

    def __lt__(self, other: "Money") -> bool:
        """Less than comparison."""
        return self.cents < other.cents

    def __le__(self, other: "Money") -> bool:
        """Less than or equal comparison."""
        return self.cents <= other.cents

    def __gt__(self, other: "Money") -> bool:
        """Greater than comparison."""
        return self.cents > other.cents

    def __ge__(self, other: "Money") -> bool:
        """Greater than or equal comparison."""
        return self.cents >= other.cents

    def __str__(self) -> str:
        """Format as dollar string."""
        return format_cents(self.cents)

    def __repr__(self) -> str:
        """Repr format."""
        return f"Money(cents={self.cents})"
