"""
Owner Statements - Vendor Expense Import and Reconciliation

Imports vendor expense documents (PDF invoices and spreadsheets) into monthly
owner statements for a portfolio of rental properties.

Key Features:
- PDF and spreadsheet expense extraction
- Property resolution cascade (exact, normalized, AI or fuzzy)
- Human-approved preview before anything is written
- Chunked, resumable commits with statement total recomputation
- Cached month statements, duplicate checks and AI matches

Domain Packages:
- core: Currency handling, data models, configuration
- storage: Datastore tables, repository, cache stores and import jobs
- vendor_import: Extraction, resolution, preview and reconciliation
- cli: Command-line interface

Example Usage:
    from ownerstatements.core import Money, get_config
    from ownerstatements.vendor_import import VendorImportService
"""

__version__ = "0.1.0"
__author__ = "Owner Statements Team"

# Export core utilities for easy access
from .core.config import Environment, get_config
from .core.currency import cents_to_dollars_str, parse_amount_to_cents
from .core.models import CanonicalProperty, MatchResult
from .core.money import Money

__all__ = [
    # Core models
    "CanonicalProperty",
    # Configuration
    "Environment",
    "MatchResult",
    "Money",
    # Core currency functions
    "cents_to_dollars_str",
    "get_config",
    "parse_amount_to_cents",
]
