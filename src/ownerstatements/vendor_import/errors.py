#!/usr/bin/env python3
"""
Vendor Import Errors

Every error carries a short user_message naming the offending vendor,
description, month or property. Stack detail is logged, never put in the
message.
"""

from ..core.errors import (
    CommitInProgress,
    InvalidTransition,
    NotFoundError,
    ValidationError,
    VendorImportError,
)

__all__ = [
    "AIServiceUnavailable",
    "CommitInProgress",
    "InvalidTransition",
    "NoExpensesFound",
    "NoPropertiesMatched",
    "NotFoundError",
    "PartialCommitFailure",
    "PossibleDuplicate",
    "ValidationError",
    "VendorImportError",
]


class AIServiceUnavailable(VendorImportError):
    """Document or matching AI failed transiently. Nothing was written."""

    retryable = True


class NoExpensesFound(VendorImportError):
    """The document yielded no usable expense line items."""


class NoPropertiesMatched(VendorImportError):
    """No extracted identifier was matched and approved for a property."""


class PossibleDuplicate(VendorImportError):
    """
    The vendor and description were already imported for the month.

    Soft block: the caller may retry with an explicit override.
    """

    def __init__(self, vendor: str, description: str, month: str, property_names: list[str] | None = None):
        self.vendor = vendor
        self.description = description
        self.month = month
        self.property_names = list(property_names or [])
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        message = f'Expenses from "{self.vendor}" for "{self.description}" already exist for {self.month}'
        if self.property_names:
            shown = ", ".join(self.property_names[:3])
            if len(self.property_names) > 3:
                shown += f" and {len(self.property_names) - 3} more"
            message += f" on {shown}"
        return message + ". Confirm to import anyway."


class PartialCommitFailure(VendorImportError):
    """
    A chunk failed after earlier chunks committed.

    Committed rows stay in place; re-submitting the same approved set
    resumes safely because already-committed rows are skipped.
    """

    retryable = True

    def __init__(self, committed_rows: int, remaining_rows: int, failed_chunk_index: int, total_chunks: int):
        self.committed_rows = committed_rows
        self.remaining_rows = remaining_rows
        self.failed_chunk_index = failed_chunk_index
        self.total_chunks = total_chunks
        super().__init__(
            f"Import stopped at chunk {failed_chunk_index + 1} of {total_chunks}: "
            f"{committed_rows} expenses saved, {remaining_rows} not saved. Retry to finish."
        )
