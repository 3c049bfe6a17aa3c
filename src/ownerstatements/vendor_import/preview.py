#!/usr/bin/env python3
"""
Preview Builder

Pure transformation from extracted items and match results to an
ImportSession. No I/O and no clock: identical inputs always produce an
identical preview, so clients can retry safely.
"""

from ..core.models import CanonicalProperty, MatchResult
from ..core.money import Money
from .models import ExpenseLine, ExtractedLineItem, ImportSession, MatchedGroup, PreviewSummary, UnmatchedGroup


def build_preview(
    items: list[ExtractedLineItem],
    matches: dict[str, MatchResult],
    candidates: list[CanonicalProperty],
    row_errors: list[str] | tuple[str, ...] = (),
) -> ImportSession:
    """
    Group line items for human review.

    Matched items are grouped under their resolved property (several raw
    identifiers may land on one property); the group's confidence is the
    lowest of its identifiers' confidences. Unmatched items are grouped under
    their raw identifier. Groups appear in first-seen item order.

    Args:
        items: Extracted line items
        matches: Resolver output keyed by raw identifier
        candidates: The month's canonical properties
        row_errors: Rows skipped during extraction, passed through

    Returns:
        ImportSession ready for serialization
    """
    properties = {candidate.id: candidate for candidate in candidates}

    matched_expenses: dict[str, list[ExpenseLine]] = {}
    matched_identifiers: dict[str, list[str]] = {}
    matched_results: dict[str, list[MatchResult]] = {}
    unmatched_expenses: dict[str, list[ExpenseLine]] = {}

    for item in items:
        result = matches.get(item.raw_property)
        if result is not None and result.is_matched and result.property_id in properties:
            property_id = result.property_id
            matched_expenses.setdefault(property_id, []).append(item.to_expense_line())
            identifiers = matched_identifiers.setdefault(property_id, [])
            if item.raw_property not in identifiers:
                identifiers.append(item.raw_property)
                matched_results.setdefault(property_id, []).append(result)
        else:
            unmatched_expenses.setdefault(item.raw_property, []).append(item.to_expense_line())

    matched_groups = []
    for property_id, expenses in matched_expenses.items():
        results = matched_results[property_id]
        reasons = list(dict.fromkeys(result.reason for result in results if result.reason))
        matched_groups.append(
            MatchedGroup(
                property=properties[property_id],
                confidence=min(result.confidence for result in results),
                reason="; ".join(reasons) or None,
                identifiers=tuple(matched_identifiers[property_id]),
                expenses=tuple(expenses),
            )
        )

    unmatched_groups = [
        UnmatchedGroup(property_name=name, expenses=tuple(expenses)) for name, expenses in unmatched_expenses.items()
    ]

    summary = PreviewSummary(
        matched_property_count=len(matched_groups),
        unmatched_property_count=len(unmatched_groups),
        matched_expense_count=sum(len(group.expenses) for group in matched_groups),
        unmatched_expense_count=sum(len(group.expenses) for group in unmatched_groups),
        matched_amount=Money.total(group.total_amount for group in matched_groups),
        unmatched_amount=Money.total(group.total_amount for group in unmatched_groups),
    )

    return ImportSession(
        matched=tuple(matched_groups),
        unmatched=tuple(unmatched_groups),
        summary=summary,
        row_errors=tuple(row_errors),
    )
