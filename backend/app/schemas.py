from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .recommender.types import (
    ChatTurn,
    ConversationContext,
    Coordinates,
    DiscoverySuggestion,
    Intent,
    LocationConstraint,
    MapMarker,
    ReasonedRecommendation,
    Viewport,
)


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class LocationModel(BaseModel):
    name: str
    center: LatLng
    radius_km: float = Field(gt=0)
    district: str | None = None
    island: str | None = None

    @classmethod
    def from_domain(cls, location: LocationConstraint | None) -> LocationModel | None:
        if location is None:
            return None
        return cls(
            name=location.name,
            center=LatLng(lat=location.center.lat, lng=location.center.lng),
            radius_km=location.radius_km,
            district=location.district,
            island=location.island,
        )

    def to_domain(self) -> LocationConstraint:
        return LocationConstraint(
            name=self.name,
            center=Coordinates(lat=self.center.lat, lng=self.center.lng),
            radius_km=self.radius_km,
            district=self.district,
            island=self.island,
        )


class ChatTurnModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=4000)


class ContextModel(BaseModel):
    """Session snapshot the client echoes back on every turn."""

    interest_scores: dict[str, float] = Field(default_factory=dict)
    recent_place_ids: list[str] = Field(default_factory=list, max_length=200)
    geographic_focus: LocationModel | None = None
    predicted_interests: list[str] = Field(default_factory=list)
    message_count: int = Field(default=0, ge=0)
    last_query: str = ""

    @field_validator("interest_scores")
    @classmethod
    def _clamp_interests(cls, value: dict[str, float]) -> dict[str, float]:
        return {k: min(1.0, max(0.0, float(v))) for k, v in value.items()}

    def to_domain(self) -> ConversationContext:
        return ConversationContext(
            interest_scores=dict(self.interest_scores),
            recent_place_ids=tuple(self.recent_place_ids),
            geographic_focus=self.geographic_focus.to_domain() if self.geographic_focus else None,
            predicted_interests=tuple(self.predicted_interests),
            message_count=self.message_count,
            last_query=self.last_query,
        )

    @classmethod
    def from_domain(cls, context: ConversationContext) -> ContextModel:
        return cls(
            interest_scores=dict(context.interest_scores),
            recent_place_ids=list(context.recent_place_ids),
            geographic_focus=LocationModel.from_domain(context.geographic_focus),
            predicted_interests=list(context.predicted_interests),
            message_count=context.message_count,
            last_query=context.last_query,
        )


class RecommendationRequest(BaseModel):
    query: str = Field(max_length=1000, description="User free-text message")
    history: list[ChatTurnModel] = Field(default_factory=list, max_length=50)
    context: ContextModel | None = None
    limit: int | None = Field(default=None, ge=1, le=100, description="Cap on returned markers")
    include_reasoning: bool = True

    def history_turns(self) -> list[ChatTurn]:
        return [ChatTurn(role=t.role, content=t.content) for t in self.history]


class IntentModel(BaseModel):
    primary_intent: str
    natural_language_intent: str
    categories: list[str]
    atmosphere: list[str]
    experience: list[str]
    location: LocationModel | None = None
    price_level: str | None = None
    price_flexibility: str | None = None
    time_of_day: str | None = None
    group_type: str | None = None
    implicit_needs: list[str]
    must_have_features: list[str]
    nice_to_have_features: list[str]
    search_queries: list[str]
    related_categories: list[str]
    confidence: float

    @classmethod
    def from_domain(cls, intent: Intent) -> IntentModel:
        return cls(
            primary_intent=intent.primary_intent,
            natural_language_intent=intent.natural_language_intent,
            categories=list(intent.categories),
            atmosphere=list(intent.atmosphere),
            experience=list(intent.experience),
            location=LocationModel.from_domain(intent.location),
            price_level=intent.price.level if intent.price else None,
            price_flexibility=intent.price.flexibility if intent.price else None,
            time_of_day=intent.time_of_day,
            group_type=intent.group_type,
            implicit_needs=list(intent.implicit_needs),
            must_have_features=list(intent.must_have_features),
            nice_to_have_features=list(intent.nice_to_have_features),
            search_queries=list(intent.search_queries),
            related_categories=list(intent.related_categories),
            confidence=round(intent.confidence, 4),
        )


class MarkerModel(BaseModel):
    id: str
    poi_id: str
    latitude: float
    longitude: float
    title: str
    category: str
    subtitle: str | None = None
    thumbnail: str | None = None
    rating: float | None = None
    review_count: int | None = None
    price_range: str | None = None
    address: str | None = None
    website: str | None = None
    is_highlighted: bool = False

    @classmethod
    def from_domain(cls, marker: MapMarker) -> MarkerModel:
        return cls(**{name: getattr(marker, name) for name in cls.model_fields})


class BoundsModel(BaseModel):
    ne: LatLng
    sw: LatLng


class ViewportModel(BaseModel):
    center: LatLng
    zoom: int
    bounds: BoundsModel | None = None
    highlight_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, viewport: Viewport | None) -> ViewportModel | None:
        if viewport is None:
            return None
        bounds = None
        if viewport.bounds is not None:
            bounds = BoundsModel(
                ne=LatLng(lat=viewport.bounds.ne.lat, lng=viewport.bounds.ne.lng),
                sw=LatLng(lat=viewport.bounds.sw.lat, lng=viewport.bounds.sw.lng),
            )
        return cls(
            center=LatLng(lat=viewport.center.lat, lng=viewport.center.lng),
            zoom=viewport.zoom,
            bounds=bounds,
            highlight_ids=list(viewport.highlight_ids),
        )


class RecommendationItem(BaseModel):
    poi_id: str
    name: str
    category: str
    rank: int
    reasoning: str
    highlights: list[str]
    match_score: int

    @classmethod
    def from_domain(cls, rec: ReasonedRecommendation) -> RecommendationItem:
        return cls(
            poi_id=rec.poi.id,
            name=rec.poi.name,
            category=rec.poi.category,
            rank=rec.rank,
            reasoning=rec.reasoning,
            highlights=list(rec.highlights),
            match_score=rec.match_score,
        )


class DiscoveryItem(BaseModel):
    poi_id: str
    name: str
    category: str
    reason: str
    connection_to_query: str

    @classmethod
    def from_domain(cls, item: DiscoverySuggestion) -> DiscoveryItem:
        return cls(
            poi_id=item.poi.id,
            name=item.poi.name,
            category=item.category,
            reason=item.reason,
            connection_to_query=item.connection_to_query,
        )


class StatsModel(BaseModel):
    total_candidates: int
    semantic_matches: int
    interest_matches: int
    geographic_matches: int


class RecommendationResponse(BaseModel):
    markers: list[MarkerModel]
    highlighted_ids: list[str]
    clustered_ids: list[str]
    viewport: ViewportModel | None = None
    stats: StatsModel
    intent: IntentModel | None = None
    top_recommendations: list[RecommendationItem] | None = None
    discover_also: list[DiscoveryItem] | None = None
    mentioned_place_ids: list[str] = Field(default_factory=list)
    context: ContextModel


class MentionRequest(BaseModel):
    text: str = Field(max_length=8000)


class MentionItem(BaseModel):
    poi_id: str
    name: str
    start: int
    end: int
    match_type: Literal["exact", "alias"]
    confidence: float


class MentionResponse(BaseModel):
    matches: list[MentionItem]
