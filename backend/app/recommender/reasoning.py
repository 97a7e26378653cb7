from __future__ import annotations

import logging
from collections.abc import Sequence

from ..settings import EngineConfig
from .lexicon import IntentLexicon, display_name
from .types import POI, DiscoverySuggestion, Intent, ReasonedRecommendation, ScoredCandidate

logger = logging.getLogger(__name__)

DISCOVERY_MIN_RATING = 4.0
DISCOVERY_PER_CATEGORY = 2
FALLBACK_REASON = "Great option based on your preferences"


def _justification(candidate: ScoredCandidate, intent: Intent) -> str:
    scores = candidate.scores
    poi = candidate.poi
    parts: list[str] = []
    if scores.quality >= 0.8:
        parts.append(f"Highly rated ({poi.rating:.1f}/5)")
    if scores.geographic >= 0.8:
        if intent.location is not None:
            parts.append(f"Right by {intent.location.name}")
        else:
            parts.append("Perfect location for your needs")
    if candidate.matched_features:
        parts.append(f"Has {', '.join(candidate.matched_features)}")
    if scores.semantic >= 0.7:
        parts.append("Excellent match for what you're looking for")
    return ". ".join(parts) or FALLBACK_REASON


def _highlights(poi: POI) -> list[str]:
    badges: list[str] = []
    if poi.rating >= 4.5:
        badges.append(f"{poi.rating:.1f}★ rating")
    if poi.review_count >= 100:
        badges.append(f"{poi.review_count}+ reviews")
    if poi.district:
        badges.append(poi.district)
    if poi.price_range:
        badges.append(poi.price_range)
    return badges


class RecommendationReasoner:
    def __init__(self, lexicon: IntentLexicon, config: EngineConfig | None = None) -> None:
        self.lexicon = lexicon
        self.config = config or EngineConfig()

    def rank(self, intent: Intent, candidates: Sequence[ScoredCandidate]) -> list[ReasonedRecommendation]:
        pool_size = min(self.config.for_reasoning, self.config.max_total)
        top = list(candidates[:pool_size])[: self.config.final_recommendations]
        return [
            ReasonedRecommendation(
                poi=c.poi,
                rank=i + 1,
                reasoning=_justification(c, intent),
                highlights=_highlights(c.poi),
                match_score=round(c.scores.total * 100),
            )
            for i, c in enumerate(top)
        ]

    def discover(
        self, intent: Intent, corpus: Sequence[POI], exclude_ids: Sequence[str]
    ) -> list[DiscoverySuggestion]:
        """Adjacent-category suggestions that are not already on the map."""
        limit = self.config.discovery_suggestions
        if limit <= 0:
            return []
        used = set(exclude_ids)
        tags = [*intent.atmosphere, *intent.experience]
        suggestions: list[DiscoverySuggestion] = []
        for category in intent.related_categories:
            if category in intent.categories:
                continue
            picks = sorted(
                (
                    p
                    for p in corpus
                    if p.category == category and p.id not in used and p.rating >= DISCOVERY_MIN_RATING
                ),
                key=lambda p: (-p.rating, p.id),
            )[:DISCOVERY_PER_CATEGORY]
            connection = self.lexicon.connection_sentence(tags, category) or (
                f"Complements your {intent.primary_intent} experience"
            )
            for poi in picks:
                used.add(poi.id)
                suggestions.append(
                    DiscoverySuggestion(
                        poi=poi,
                        reason=f"{poi.rating:.1f}★ {display_name(category)}",
                        connection_to_query=connection,
                        category=category,
                    )
                )
                if len(suggestions) >= limit:
                    return suggestions
        return suggestions
