from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ...recommender import RecommendationEngine
from ...recommender.types import ConversationContext, SelectionResult
from ...schemas import (
    ContextModel,
    DiscoveryItem,
    IntentModel,
    MarkerModel,
    MentionItem,
    MentionRequest,
    MentionResponse,
    RecommendationItem,
    RecommendationRequest,
    RecommendationResponse,
    StatsModel,
    ViewportModel,
)

router = APIRouter(tags=["recommendations"])

# Singleton engine; loads the corpus snapshot and builds the hash index on import.
try:
    ENGINE: RecommendationEngine | None = RecommendationEngine.default()
except Exception as exc:  # pragma: no cover - defensive path
    ENGINE = None
    init_error: Exception | None = exc
else:
    init_error = None


def _require_engine() -> RecommendationEngine:
    if ENGINE is None:
        raise HTTPException(status_code=503, detail=f"Recommendations unavailable: {init_error}")
    return ENGINE


def _apply_limit(result: SelectionResult, limit: int | None) -> None:
    if limit is None or len(result.markers) <= limit:
        return
    result.markers = result.markers[:limit]
    kept = {m.poi_id for m in result.markers}
    result.highlighted_ids = [pid for pid in result.highlighted_ids if pid in kept]
    result.clustered_ids = [pid for pid in result.clustered_ids if pid in kept]


@router.post("/recommendations", response_model=RecommendationResponse)
async def recommend(req: RecommendationRequest) -> RecommendationResponse:
    engine = _require_engine()
    context = req.context.to_domain() if req.context else ConversationContext()
    result = await engine.recommend(
        req.query,
        history=req.history_turns(),
        context=context,
        reasoning=req.include_reasoning,
    )
    _apply_limit(result, req.limit)

    mentioned = engine.mentioned_place_ids(req.query)
    detected = result.intent.categories if result.intent else []
    next_context = engine.context_tracker.update(context, req.query, mentioned, detected)

    return RecommendationResponse(
        markers=[MarkerModel.from_domain(m) for m in result.markers],
        highlighted_ids=result.highlighted_ids,
        clustered_ids=result.clustered_ids,
        viewport=ViewportModel.from_domain(result.viewport),
        stats=StatsModel(
            total_candidates=result.stats.total_candidates,
            semantic_matches=result.stats.semantic_matches,
            interest_matches=result.stats.interest_matches,
            geographic_matches=result.stats.geographic_matches,
        ),
        intent=IntentModel.from_domain(result.intent) if result.intent else None,
        top_recommendations=(
            [RecommendationItem.from_domain(r) for r in result.top_recommendations]
            if result.top_recommendations is not None
            else None
        ),
        discover_also=(
            [DiscoveryItem.from_domain(d) for d in result.discover_also]
            if result.discover_also is not None
            else None
        ),
        mentioned_place_ids=mentioned,
        context=ContextModel.from_domain(next_context),
    )


@router.post("/places/mentions", response_model=MentionResponse)
async def place_mentions(req: MentionRequest) -> MentionResponse:
    engine = _require_engine()
    matches = engine.place_index.find_matches(req.text)
    return MentionResponse(
        matches=[
            MentionItem(
                poi_id=m.poi.id,
                name=m.poi.name,
                start=m.start,
                end=m.end,
                match_type=m.match_type,
                confidence=round(m.confidence, 3),
            )
            for m in matches
        ]
    )
