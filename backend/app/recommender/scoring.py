from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence

from ..settings import EngineConfig
from .geo import has_valid_coordinates, haversine_km
from .intent import variant_weight
from .lexicon import IntentLexicon, bundled_lexicon
from .types import (
    POI,
    AxisScores,
    ConversationContext,
    Intent,
    LocationConstraint,
    ScoredCandidate,
)

logger = logging.getLogger(__name__)

# Recent ids beyond this position do not earn the session boost.
SESSION_RECENT_WINDOW = 10
CATEGORY_MATCH_BONUS = 0.15


def filter_corpus(
    pois: Sequence[POI],
    context: ConversationContext | None,
    hidden_categories: frozenset[str] | set[str],
    interest_threshold: float,
) -> list[POI]:
    """Active POIs with usable coordinates whose category is visible to this session."""
    interests = context.interest_scores if context else {}
    kept: list[POI] = []
    for poi in pois:
        if not poi.is_active or not has_valid_coordinates(poi.coordinates):
            continue
        if poi.category in hidden_categories and interests.get(poi.category, 0.0) <= interest_threshold:
            continue
        kept.append(poi)
    return kept


def quality_score(poi: POI) -> float:
    rating = poi.rating or 0.0
    if rating >= 4.8:
        quality = 1.0
    elif rating >= 4.5:
        quality = 0.85
    elif rating >= 4.0:
        quality = 0.7
    elif rating >= 3.5:
        quality = 0.5
    else:
        quality = 0.3

    # social proof
    reviews = poi.review_count or 0
    if reviews >= 500:
        quality += 0.15
    elif reviews >= 100:
        quality += 0.1
    elif reviews >= 50:
        quality += 0.05
    return min(1.0, quality)


def feature_matches(poi: POI, features: Sequence[str]) -> list[str]:
    text = poi.text_blob
    return [f for f in features if all(term in text for term in f.lower().split())]


def geographic_score(poi: POI, location: LocationConstraint | None) -> float:
    if location is None or poi.coordinates is None:
        return 0.5
    distance = haversine_km(poi.coordinates, location.center)
    radius = max(location.radius_km, 0.0)
    if distance <= radius:
        return 1.0
    if distance <= radius * 2:
        return 0.7
    if distance <= radius * 3:
        return 0.4
    return 0.1


def freshness_score(poi: POI, shown_count: int = 0, recency_penalty: float = 0.0) -> float:
    freshness = 0.5
    if poi.thumbnail:
        freshness += 0.2
    if poi.website:
        freshness += 0.15
    if poi.has_opening_hours:
        freshness += 0.15
    freshness = min(1.0, freshness)
    if shown_count > 2:
        freshness -= recency_penalty * (shown_count - 2)
    return max(0.0, freshness)


def semantic_score(poi_id: str, variants: Sequence[Mapping[str, float]] | None) -> float:
    if not variants:
        return 0.0
    best = 0.0
    for idx, similarities in enumerate(variants):
        sim = similarities.get(poi_id)
        if sim is None:
            continue
        best = max(best, min(1.0, max(0.0, sim)) * variant_weight(idx))
    return best


class CandidateScorer:
    """Multi-axis scorer parameterised by the weight profile in ``EngineConfig``."""

    def __init__(self, config: EngineConfig | None = None, lexicon: IntentLexicon | None = None) -> None:
        self.config = config or EngineConfig()
        self.lexicon = lexicon or bundled_lexicon()

    def _feature_score(
        self, poi: POI, intent: Intent, context: ConversationContext
    ) -> tuple[float, list[str]]:
        text = poi.text_blob
        matched = feature_matches(poi, intent.must_have_features)
        if intent.must_have_features:
            score = len(matched) / len(intent.must_have_features)
        else:
            score = 0.5
        for feature in intent.nice_to_have_features:
            if feature.lower() in text:
                score += 0.1
        score += CATEGORY_MATCH_BONUS * self.lexicon.atmosphere_hits(intent.atmosphere, text)
        if poi.category in intent.categories:
            score += CATEGORY_MATCH_BONUS
        else:
            score += self.config.interest_bonus * context.interest_scores.get(poi.category, 0.0)
        return min(1.0, max(0.0, score)), matched

    def _total(self, axes: AxisScores, semantic_available: bool) -> float:
        w = self.config.weights
        weighted = (
            axes.quality * w.quality
            + axes.feature * w.feature
            + axes.geographic * w.geographic
            + axes.diversity * w.diversity
            + axes.freshness * w.freshness
        )
        active = w.quality + w.feature + w.geographic + w.diversity + w.freshness
        if semantic_available:
            weighted += axes.semantic * w.semantic
            active += w.semantic
        if active <= 0:
            return 0.0
        return min(1.0, max(0.0, weighted / active))

    def score_one(
        self,
        poi: POI,
        intent: Intent,
        context: ConversationContext,
        semantic: Sequence[Mapping[str, float]] | None = None,
        shown: Counter[str] | None = None,
        location: LocationConstraint | None = None,
    ) -> ScoredCandidate:
        feature, matched = self._feature_score(poi, intent, context)
        axes = AxisScores(
            semantic=semantic_score(poi.id, semantic),
            quality=quality_score(poi),
            feature=feature,
            geographic=geographic_score(poi, location if location is not None else intent.location),
            diversity=1.0,
            freshness=freshness_score(
                poi, (shown or Counter()).get(poi.id, 0), self.config.recency_penalty
            ),
        )
        axes.total = self._total(axes, semantic_available=bool(semantic))
        return ScoredCandidate(poi=poi, scores=axes, matched_features=matched)

    def score(
        self,
        intent: Intent,
        pois: Sequence[POI],
        context: ConversationContext | None = None,
        semantic: Sequence[Mapping[str, float]] | None = None,
    ) -> list[ScoredCandidate]:
        """Score, boost, filter and order ``pois`` for one request.

        ``semantic`` holds one similarity map per search-query variant, in
        variant order. ``None`` or an empty list puts the scorer in degraded
        mode where the semantic weight is left out of the total.
        """
        context = context or ConversationContext()
        location = intent.location or context.geographic_focus
        shown = Counter(context.recent_place_ids)
        recent = set(context.recent_place_ids[:SESSION_RECENT_WINDOW])

        scored: list[ScoredCandidate] = []
        for poi in pois:
            candidate = self.score_one(poi, intent, context, semantic, shown, location)
            if poi.id in recent:
                candidate.session_recent = True
                candidate.scores.total = min(1.0, candidate.scores.total + self.config.session_boost)
            elif candidate.scores.total < self.config.min_total_score:
                continue
            scored.append(candidate)

        # sort is stable so equal totals keep corpus order
        scored.sort(key=lambda c: c.scores.total, reverse=True)
        logger.debug(
            "Scored %d/%d candidates (profile=%s, semantic=%s)",
            len(scored),
            len(pois),
            self.config.weights.name,
            bool(semantic),
        )
        return scored
