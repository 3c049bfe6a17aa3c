#!/usr/bin/env python3
"""
Currency Conversion and Handling Utilities

Currency handling for owner statements and vendor imports.
All financial calculations use integer arithmetic to avoid floating-point errors.

Currency Systems:
- Internal calculations and storage use cents: 100 cents = $1.00
- Documents, spreadsheets and JSON payloads use decimal major units: 12.34
- Display uses dollar strings: "$12.34"

Key Principles:
- Never use floating-point arithmetic for currency calculations
- Convert to integer cents at every boundary (spreadsheet cell, AI reply, JSON request)
- Round exactly once, when a decimal value becomes cents
- Reject unparseable amounts rather than coercing them to zero
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# Characters stripped from spreadsheet amount cells before parsing
_AMOUNT_NOISE = re.compile(r"[$£€¥₹,\s]")
_AMOUNT_SHAPE = re.compile(r"^-?\d*\.?\d*$")

_CENT = Decimal("0.01")


def cents_to_dollars_str(cents: int) -> str:
    """
    Convert cents to dollar string using pure integer arithmetic.

    Args:
        cents: Amount in cents

    Returns:
        Formatted dollar string

    Example:
        cents_to_dollars_str(4599) -> "45.99"
    """
    # Handle negative amounts properly
    is_negative = cents < 0
    abs_cents = abs(int(cents))  # Ensure it's an int

    dollars = int(abs_cents // 100)
    remainder = int(abs_cents % 100)

    if is_negative:
        return f"-{dollars}.{remainder:02d}"
    else:
        return f"{dollars}.{remainder:02d}"


def decimal_to_cents(value: Decimal) -> int:
    """
    Convert a decimal amount in major units to integer cents.

    This is the single rounding point for amounts entering the system.
    Values with more than two fractional digits are rounded half-up.

    Example:
        decimal_to_cents(Decimal("12.345")) -> 1235
    """
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int) -> Decimal:
    """
    Convert integer cents to a two-digit Decimal in major units.

    Example:
        cents_to_decimal(-5000) -> Decimal("-50.00")
    """
    return (Decimal(int(cents)) / 100).quantize(_CENT)


def parse_amount_to_cents(value: Any) -> int:
    """
    Parse an amount cell or AI-reported amount into integer cents.

    Accepts numbers (int, float, Decimal) and strings that may carry currency
    symbols, thousands separators, spaces and accounting-style parentheses
    for negatives.

    Args:
        value: Raw amount value

    Returns:
        Amount in cents

    Raises:
        ValueError: If the value is empty or not a well-formed amount

    Examples:
        parse_amount_to_cents("$1,234.56") -> 123456
        parse_amount_to_cents("(50.00)") -> -5000
        parse_amount_to_cents("12.34.56") -> ValueError
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid amount {value!r}")

    if isinstance(value, (int, float, Decimal)):
        # str() keeps the shortest repr of floats, so 0.1 stays 0.1
        try:
            decimal_value = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount {value!r}") from e
        if not decimal_value.is_finite():
            raise ValueError(f"Invalid amount {value!r}")
        return decimal_to_cents(decimal_value)

    raw = str(value).strip()
    clean = _AMOUNT_NOISE.sub("", raw)

    # Accounting format: (50.00) means -50.00
    if clean.startswith("(") and clean.endswith(")"):
        clean = "-" + clean[1:-1]

    if clean.count(".") > 1 or clean.count("-") > 1:
        raise ValueError(f'Invalid amount format "{raw}"')

    if not _AMOUNT_SHAPE.match(clean) or clean in ("", "-", ".", "-."):
        raise ValueError(f'Invalid amount format "{raw}"')

    return decimal_to_cents(Decimal(clean))


def format_cents(cents: int) -> str:
    """Format cents as dollar string with $ prefix, sign first."""
    if cents < 0:
        return f"-${cents_to_dollars_str(-cents)}"
    return f"${cents_to_dollars_str(cents)}"
