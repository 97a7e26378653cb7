from __future__ import annotations

import logging
from collections.abc import Sequence

from .lexicon import IntentLexicon, bundled_lexicon, display_name
from .types import ChatTurn, Intent, LocationConstraint, PriceConstraint

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.5
GENERIC_INTENT = "General exploration of the Cayman Islands"


def variant_weight(index: int) -> float:
    """Weight of the i-th search-query variant (the raw query is variant 0)."""
    return max(0.0, 1.0 - 0.2 * index)


def _dedupe(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


class IntentExtractor:
    """Rule-based, deterministic query interpreter backed by an IntentLexicon."""

    def __init__(self, lexicon: IntentLexicon | None = None) -> None:
        self.lexicon = lexicon or bundled_lexicon()

    def _carried_forward(
        self, query: str, history: Sequence[ChatTurn]
    ) -> tuple[list[str], LocationConstraint | None]:
        categories: list[str] = []
        location: LocationConstraint | None = None
        prior = [turn for turn in history if turn.role == "user" and turn.content.strip()]
        # the current message may already be the tail of the history
        if prior and prior[-1].content.strip() == query.strip():
            prior = prior[:-1]
        for turn in reversed(prior):
            text = turn.content.lower()
            if not categories:
                categories = self.lexicon.match_categories(text)
            if location is None:
                location = self.lexicon.match_location(text)
            if categories and location is not None:
                break
        return categories, location

    def _primary_intent(self, categories: list[str], experience: list[str]) -> str:
        cats = set(categories)
        exp = set(experience)
        for rule in self.lexicon.primary_intents:
            if cats & rule.categories or exp & rule.experience:
                return rule.intent
        return "explore"

    @staticmethod
    def _natural_language(intent: Intent) -> str:
        parts: list[str] = []
        if intent.group_type:
            parts.append(f"for {intent.group_type}")
        if intent.atmosphere:
            parts.append(f"{', '.join(intent.atmosphere)} atmosphere")
        if intent.categories:
            parts.append(", ".join(display_name(c) for c in intent.categories))
        if intent.location:
            parts.append(f"near {intent.location.name}")
        if intent.price:
            parts.append(f"{intent.price.level} price range")
        if intent.time_of_day:
            parts.append(f"for {intent.time_of_day}")
        if not parts:
            return GENERIC_INTENT
        return "Looking " + ", ".join(parts)

    def _search_queries(self, intent: Intent) -> list[str]:
        queries = [intent.query]
        if intent.atmosphere or intent.experience:
            enriched = " ".join(
                part
                for part in [
                    *(f"{a} atmosphere" for a in intent.atmosphere),
                    *intent.experience,
                    *(display_name(c) for c in intent.categories),
                    intent.location.name if intent.location else "",
                ]
                if part
            )
            if enriched and enriched != intent.query:
                queries.append(enriched)
        if intent.must_have_features:
            focus = display_name(intent.categories[0]) if intent.categories else ""
            queries.append(" ".join([*intent.must_have_features, focus]).strip())
        return queries

    def extract(self, query: str, history: Sequence[ChatTurn] | None = None) -> Intent:
        lexicon = self.lexicon
        text = (query or "").lower()
        intent = Intent(query=query or "")

        intent.atmosphere = lexicon.match_atmosphere(text)
        intent.experience = lexicon.match_experience(text)
        intent.categories = lexicon.match_categories(text)
        intent.location = lexicon.match_location(text)

        price_rule = lexicon.match_price(text)
        if price_rule is not None:
            flexibility = "strict" if price_rule.extra == "strict" else "flexible"
            intent.price = PriceConstraint(level=price_rule.label, flexibility=flexibility)
        intent.time_of_day = lexicon.match_time_of_day(text)
        intent.group_type = lexicon.match_group_type(text)

        confidence = BASE_CONFIDENCE
        if intent.categories:
            confidence += 0.15
        if intent.location:
            confidence += 0.15
        if intent.atmosphere:
            confidence += 0.1
        if intent.group_type:
            confidence += 0.05
        if intent.price:
            confidence += 0.05
        intent.confidence = min(1.0, confidence)

        if history and (not intent.categories or intent.location is None):
            carried_categories, carried_location = self._carried_forward(query or "", history)
            if not intent.categories and carried_categories:
                intent.categories = carried_categories
            if intent.location is None and carried_location is not None:
                intent.location = carried_location

        intent.must_have_features = lexicon.match_must_haves(text)
        intent.implicit_needs = _dedupe(
            [need for tag in intent.atmosphere for need in lexicon.implicit_needs.get(tag, ())]
        )
        nice: list[str] = []
        for category in intent.categories:
            nice.extend(lexicon.nice_to_have_by_category.get(category, ()))
        for tag in intent.atmosphere:
            nice.extend(lexicon.nice_to_have_by_atmosphere.get(tag, ()))
        intent.nice_to_have_features = _dedupe(nice)
        intent.related_categories = lexicon.related_for(intent.categories)

        intent.primary_intent = self._primary_intent(intent.categories, intent.experience)
        intent.natural_language_intent = self._natural_language(intent)
        intent.search_queries = self._search_queries(intent)

        logger.debug(
            "Extracted intent %s (confidence=%.2f, categories=%s)",
            intent.primary_intent,
            intent.confidence,
            intent.categories,
        )
        return intent


def extract_intent(
    query: str,
    history: Sequence[ChatTurn] | None = None,
    lexicon: IntentLexicon | None = None,
) -> Intent:
    return IntentExtractor(lexicon).extract(query, history)
