"""
Vendor Expense Import Package

Imports one vendor document (PDF invoice or spreadsheet) into the monthly
owner statements of many properties.

This package provides:
- Document extraction (spreadsheets via pandas, PDFs via document AI)
- Property resolution cascade (exact, normalized, AI or similarity)
- Cached month statements, duplicate checks and match results
- Duplicate guard with explicit override
- Idempotent preview building for human review
- Chunked, resumable reconciliation with total recomputation

Key Components:
- service: VendorImportService, the entry point for preview/confirm/cancel/status
- extractor: DocumentExtractor
- resolver: PropertyResolver
- reconciler: ReconciliationEngine
"""

from .cache import CacheKeys, VendorCache, content_hash
from .duplicates import DuplicateGuard
from .errors import (
    AIServiceUnavailable,
    CommitInProgress,
    InvalidTransition,
    NoExpensesFound,
    NoPropertiesMatched,
    NotFoundError,
    PartialCommitFailure,
    PossibleDuplicate,
    ValidationError,
    VendorImportError,
)
from .extractor import DocumentExtractor, ExtractionResult, summarize_errors
from .matchers import LLMPropertyMatcher, PropertyMatcher, SimilarityPropertyMatcher, create_matcher
from .models import (
    ApprovedMatch,
    CommitResult,
    ConfirmRequest,
    DocumentType,
    ExpenseLine,
    ExtractedLineItem,
    ImportSession,
    MatchedGroup,
    PreviewSummary,
    ProspectiveExpense,
    UnmatchedGroup,
)
from .preview import build_preview
from .reconciler import ReconciliationEngine, rows_digest
from .resolver import PropertyResolver, normalize_property_name
from .service import PreviewRequest, PreviewResult, VendorImportService

__all__ = [
    # Errors
    "AIServiceUnavailable",
    # Models
    "ApprovedMatch",
    # Cache
    "CacheKeys",
    "CommitInProgress",
    "CommitResult",
    "ConfirmRequest",
    "DocumentExtractor",
    "DocumentType",
    # Duplicate guard
    "DuplicateGuard",
    "ExpenseLine",
    "ExtractedLineItem",
    "ExtractionResult",
    "ImportSession",
    "InvalidTransition",
    # Matching
    "LLMPropertyMatcher",
    "MatchedGroup",
    "NoExpensesFound",
    "NoPropertiesMatched",
    "NotFoundError",
    "PartialCommitFailure",
    "PossibleDuplicate",
    "PreviewRequest",
    "PreviewResult",
    "PreviewSummary",
    "PropertyMatcher",
    "PropertyResolver",
    "ProspectiveExpense",
    "ReconciliationEngine",
    "SimilarityPropertyMatcher",
    "UnmatchedGroup",
    "ValidationError",
    "VendorCache",
    "VendorImportError",
    # Service
    "VendorImportService",
    "build_preview",
    "content_hash",
    "create_matcher",
    "normalize_property_name",
    "rows_digest",
    "summarize_errors",
]
