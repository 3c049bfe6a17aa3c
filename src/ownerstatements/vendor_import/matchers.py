#!/usr/bin/env python3
"""
Property Matchers

Fuzzy matching of raw property identifiers to canonical properties, used by
the resolver after exact and normalized matching fail.

Two implementations share one contract (identifiers + candidates ->
best-effort matches with confidence):
- LLMPropertyMatcher: one batched prompt per document to the matching AI
- SimilarityPropertyMatcher: rapidfuzz string similarity, no AI access needed

Identifiers missing from a matcher's result are unmatched.
"""

import json
import logging
from typing import Protocol

from rapidfuzz import fuzz

from ..core.config import Config
from ..core.json_utils import parse_json_object
from ..core.models import CanonicalProperty, MatchMethod, MatchResult
from .ai import AIClient

logger = logging.getLogger(__name__)

# Matches below this confidence are treated as unmatched
MIN_CONFIDENCE = 0.5


class PropertyMatcher(Protocol):
    """Best-effort identifier-to-property matching."""

    async def match(
        self, identifiers: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult]: ...


def build_match_prompt(identifiers: list[str], candidates: list[CanonicalProperty]) -> str:
    """
    Build the matching prompt.

    The prompt is a pure function of its inputs (in the given order) so
    identical requests produce identical prompts.
    """
    property_lines = []
    for candidate in candidates:
        line = f"{json.dumps(candidate.name)} (ID: {candidate.id}"
        if candidate.address:
            line += f", address: {json.dumps(candidate.address)}"
        property_lines.append(line + ")")
    import_lines = [json.dumps(identifier) for identifier in identifiers]

    return f"""Match property names from import data to database properties.
Compare each import property against both the name and the address of every database property.

DATABASE PROPERTIES:
{chr(10).join(property_lines)}

IMPORT PROPERTIES:
{chr(10).join(import_lines)}

MATCHING RULES:
1. Exact matches get confidence 1.0
2. Very similar matches (minor differences) get confidence 0.8-0.9
3. Partial matches get confidence 0.5-0.7
4. Only return matches with confidence >= 0.5; omit every other import property

Return ONLY this JSON format:
{{
  "matches": {{
    "importPropertyName": {{
      "propertyId": "database-property-id",
      "confidence": 0.95,
      "reason": "short explanation"
    }}
  }}
}}"""


def parse_match_reply(
    reply: str,
    identifiers: list[str],
    candidates: list[CanonicalProperty],
    method: MatchMethod = MatchMethod.LLM,
) -> dict[str, MatchResult]:
    """
    Read matches out of a free-text AI reply.

    Entries are dropped when the identifier was not asked about, the
    propertyId is not a candidate, or the confidence is outside [0.5, 1].
    """
    parsed = parse_json_object(reply)
    matches = parsed.get("matches", parsed)
    if not isinstance(matches, dict):
        logger.warning("Match reply has no matches object")
        return {}

    requested = {identifier.strip(): identifier for identifier in identifiers}
    candidate_ids = {candidate.id for candidate in candidates}
    results: dict[str, MatchResult] = {}

    for key, value in matches.items():
        identifier = requested.get(str(key).strip())
        if identifier is None or not isinstance(value, dict):
            continue
        property_id = str(value.get("propertyId") or "")
        if property_id not in candidate_ids:
            logger.debug("Dropping match for %r: unknown property id %r", identifier, property_id)
            continue
        try:
            confidence = float(value.get("confidence"))
        except (TypeError, ValueError):
            continue
        if not MIN_CONFIDENCE <= confidence <= 1.0:
            continue
        reason = value.get("reason")
        results[identifier] = MatchResult(
            identifier=identifier,
            property_id=property_id,
            confidence=confidence,
            reason=str(reason) if reason else None,
            method=method,
        )
    return results


class LLMPropertyMatcher:
    """
    Matches identifiers with one batched prompt to the matching AI.

    AIServiceUnavailable from the client propagates; the resolver decides
    how to degrade.
    """

    def __init__(self, client: AIClient, temperature: float = 0.3):
        self.client = client
        self.temperature = temperature

    async def match(
        self, identifiers: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult]:
        if not identifiers or not candidates:
            return {}
        prompt = build_match_prompt(identifiers, candidates)
        reply = await self.client.complete(prompt, self.temperature)
        results = parse_match_reply(reply, identifiers, candidates)
        logger.info("AI matched %d of %d identifiers", len(results), len(identifiers))
        return results


def _normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


class SimilarityPropertyMatcher:
    """
    Matches identifiers by string similarity against name and address.

    Score is the better of token-set ratio and a discounted partial ratio,
    scaled to [0, 1]. The best candidate at or above the threshold wins;
    ties keep the earlier candidate.
    """

    PARTIAL_WEIGHT = 0.9

    def __init__(self, threshold: float = MIN_CONFIDENCE):
        self.threshold = threshold

    def score(self, identifier: str, text: str) -> float:
        left, right = _normalize_text(identifier), _normalize_text(text)
        if not left or not right:
            return 0.0
        token_set = fuzz.token_set_ratio(left, right)
        partial = fuzz.partial_ratio(left, right) * self.PARTIAL_WEIGHT
        return round(max(token_set, partial) / 100.0, 2)

    def best_match(self, identifier: str, candidates: list[CanonicalProperty]) -> MatchResult | None:
        best: MatchResult | None = None
        for candidate in candidates:
            for label, text in (("name", candidate.name), ("address", candidate.address)):
                if not text:
                    continue
                confidence = self.score(identifier, text)
                if confidence >= self.threshold and (best is None or confidence > best.confidence):
                    best = MatchResult(
                        identifier=identifier,
                        property_id=candidate.id,
                        confidence=confidence,
                        reason=f'similar to {label} "{text}"',
                        method=MatchMethod.SIMILARITY,
                    )
        return best

    async def match(
        self, identifiers: list[str], candidates: list[CanonicalProperty]
    ) -> dict[str, MatchResult]:
        results = {}
        for identifier in identifiers:
            result = self.best_match(identifier, candidates)
            if result is not None:
                results[identifier] = result
        logger.info("Similarity matched %d of %d identifiers", len(results), len(identifiers))
        return results


def create_matcher(config: Config, client: AIClient | None = None) -> PropertyMatcher:
    """
    Create the matcher selected by configuration.

    The LLM matcher falls back to string similarity when no AI client or
    API key is available.
    """
    threshold = config.vendor_import.similarity_threshold
    if config.vendor_import.matcher == "llm":
        if client is not None and config.ai.api_key:
            return LLMPropertyMatcher(client, temperature=config.ai.match_temperature)
        logger.warning("AI matching unavailable (no API key); using similarity matching")
    return SimilarityPropertyMatcher(threshold=threshold)
