"""
Core Utilities Package

Shared primitives used by the datastore, cache and vendor import pipeline.

This package provides:
- Currency handling with integer arithmetic for precision
- Money and FinancialDate value types
- Common data models for properties, statements and match results
- Configuration management for environment-specific settings
"""

from .config import (
    Config,
    Environment,
    get_config,
    reload_config,
)
from .currency import (
    cents_to_dollars_str,
    format_cents,
    parse_amount_to_cents,
)
from .dates import FinancialDate, default_expense_date, month_key, month_start
from .models import (
    CanonicalProperty,
    MatchMethod,
    MatchResult,
    MonthStatement,
    ProcessingResult,
    StatementTotals,
)
from .money import Money

__all__ = [
    # Data models
    "CanonicalProperty",
    # Configuration
    "Config",
    "Environment",
    "FinancialDate",
    "MatchMethod",
    "MatchResult",
    "Money",
    "MonthStatement",
    "ProcessingResult",
    "StatementTotals",
    # Currency utilities
    "cents_to_dollars_str",
    "default_expense_date",
    "format_cents",
    "get_config",
    "month_key",
    "month_start",
    "parse_amount_to_cents",
    "reload_config",
]
