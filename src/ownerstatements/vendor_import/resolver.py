#!/usr/bin/env python3
"""
Property Resolver

Maps raw property identifiers to canonical properties with a short-circuit
cascade:

1. Exact: identifier equals a property name
2. Normalized: equal after dropping a trailing "(OLD)"/"(NEW)", removing
   whitespace and lowercasing
3. Fuzzy: one batched PropertyMatcher call for everything still unresolved,
   cached by content hash

Each local stage returns a MatchResult or None (continue to the next stage).
A matcher timeout or outage leaves the affected identifiers unmatched.
"""

import asyncio
import logging
import re
from collections.abc import Callable

from ..core.models import CanonicalProperty, MatchMethod, MatchResult
from .cache import VendorCache
from .errors import AIServiceUnavailable
from .matchers import PropertyMatcher

logger = logging.getLogger(__name__)

_SUFFIX_PATTERN = re.compile(r"\s*\((OLD|NEW)\)\s*$", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")

Stage = Callable[[str, list[CanonicalProperty]], MatchResult | None]


def normalize_property_name(name: str) -> str:
    """
    Normalize a property name for comparison.

    Example:
        normalize_property_name("Sunset  Villa (OLD)") -> "sunsetvilla"
    """
    name = _SUFFIX_PATTERN.sub("", name)
    return _WHITESPACE_PATTERN.sub("", name).lower()


def exact_stage(identifier: str, candidates: list[CanonicalProperty]) -> MatchResult | None:
    for candidate in candidates:
        if candidate.name == identifier:
            return MatchResult(
                identifier=identifier,
                property_id=candidate.id,
                confidence=1.0,
                reason="exact match",
                method=MatchMethod.EXACT,
            )
    return None


def normalized_stage(identifier: str, candidates: list[CanonicalProperty]) -> MatchResult | None:
    target = normalize_property_name(identifier)
    if not target:
        return None
    for candidate in candidates:
        if normalize_property_name(candidate.name) == target:
            return MatchResult(
                identifier=identifier,
                property_id=candidate.id,
                confidence=1.0,
                reason=f'normalized match to "{candidate.name}"',
                method=MatchMethod.NORMALIZED,
            )
    return None


LOCAL_STAGES: tuple[Stage, ...] = (exact_stage, normalized_stage)


class PropertyResolver:
    """
    Resolves every identifier of one document.

    Args:
        matcher: Fuzzy matcher for identifiers the local stages miss
        cache: Optional cache for fuzzy results
        timeout_seconds: Limit for the matcher call
    """

    def __init__(
        self,
        matcher: PropertyMatcher,
        cache: VendorCache | None = None,
        timeout_seconds: float = 60.0,
    ):
        self.matcher = matcher
        self.cache = cache
        self.timeout_seconds = timeout_seconds

    def resolve_locally(self, identifier: str, candidates: list[CanonicalProperty]) -> MatchResult | None:
        """Run the exact and normalized stages; None means continue."""
        for stage in LOCAL_STAGES:
            result = stage(identifier, candidates)
            if result is not None:
                return result
        return None

    async def resolve(
        self, identifiers: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult]:
        """
        Resolve identifiers, returning exactly one MatchResult per distinct
        identifier in first-seen order.
        """
        ordered = list(dict.fromkeys(identifiers))
        results: dict[str, MatchResult] = {}
        remaining: list[str] = []

        for identifier in ordered:
            result = self.resolve_locally(identifier, candidates)
            if result is not None:
                results[identifier] = result
            else:
                remaining.append(identifier)

        logger.debug("Resolved %d of %d identifiers locally", len(results), len(ordered))

        if remaining and candidates:
            results.update(await self._match_remaining(remaining, candidates))

        return {
            identifier: results.get(identifier) or MatchResult.unmatched(identifier) for identifier in ordered
        }

    async def _match_remaining(
        self, remaining: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult]:
        if self.cache is not None:
            cached = await self.cache.get_matches(remaining, candidates)
            if cached is not None:
                return cached

        try:
            matches = await asyncio.wait_for(
                self.matcher.match(remaining, candidates), timeout=self.timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "Property matching timed out after %.0fs; %d identifiers left unmatched",
                self.timeout_seconds,
                len(remaining),
            )
            return {}
        except AIServiceUnavailable as e:
            logger.warning("Property matching unavailable (%s); %d identifiers left unmatched", e, len(remaining))
            return {}

        complete = {
            identifier: matches.get(identifier) or MatchResult.unmatched(identifier) for identifier in remaining
        }
        if self.cache is not None:
            await self.cache.set_matches(remaining, candidates, complete)
        return complete
