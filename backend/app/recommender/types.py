from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, get_args

Category = Literal[
    "restaurant",
    "hotel",
    "villa_rental",
    "beach",
    "diving_snorkeling",
    "water_sports",
    "boat_charter",
    "fishing",
    "bar",
    "spa_wellness",
    "activity",
    "attraction",
    "shopping",
    "nightclub",
    "golf",
    "transport",
    "event",
    "concierge",
    "private_jet",
    "real_estate",
    "financial_services",
]

CATEGORIES: tuple[str, ...] = get_args(Category)

PriceLevel = Literal["budget", "mid", "upscale", "luxury", "ultra-luxury"]


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class POI:
    id: str
    name: str
    category: str
    subcategory: str | None = None
    description: str = ""
    short_description: str = ""
    highlights: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    coordinates: Coordinates | None = None
    address: str | None = None
    island: str | None = None
    district: str | None = None
    area: str | None = None
    price_range: str | None = None
    currency: str | None = None
    has_opening_hours: bool = False
    rating: float = 0.0
    review_count: int = 0
    thumbnail: str | None = None
    website: str | None = None
    phone: str | None = None
    is_active: bool = True
    is_featured: bool = False

    @property
    def text_blob(self) -> str:
        parts = [
            self.name,
            self.description,
            self.short_description,
            " ".join(self.highlights),
            " ".join(self.tags),
            " ".join(self.keywords),
        ]
        return " ".join(p for p in parts if p).lower()


@dataclass(frozen=True)
class LocationConstraint:
    name: str
    center: Coordinates
    radius_km: float
    district: str | None = None
    island: str | None = None


@dataclass(frozen=True)
class PriceConstraint:
    level: str
    flexibility: Literal["strict", "flexible"] = "flexible"


@dataclass
class Intent:
    query: str
    primary_intent: str = "explore"
    natural_language_intent: str = ""
    categories: list[str] = field(default_factory=list)
    atmosphere: list[str] = field(default_factory=list)
    experience: list[str] = field(default_factory=list)
    location: LocationConstraint | None = None
    price: PriceConstraint | None = None
    time_of_day: str | None = None
    group_type: str | None = None
    implicit_needs: list[str] = field(default_factory=list)
    must_have_features: list[str] = field(default_factory=list)
    nice_to_have_features: list[str] = field(default_factory=list)
    search_queries: list[str] = field(default_factory=list)
    related_categories: list[str] = field(default_factory=list)
    confidence: float = 0.5


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["user", "assistant"]
    content: str


@dataclass(frozen=True)
class ConversationContext:
    """Session snapshot supplied by the calling layer; read-only for the engine."""

    interest_scores: dict[str, float] = field(default_factory=dict)
    recent_place_ids: tuple[str, ...] = ()
    geographic_focus: LocationConstraint | None = None
    predicted_interests: tuple[str, ...] = ()
    message_count: int = 0
    last_query: str = ""

    @property
    def is_empty(self) -> bool:
        return (
            self.message_count == 0
            and not self.interest_scores
            and not self.recent_place_ids
            and self.geographic_focus is None
        )


@dataclass
class AxisScores:
    semantic: float = 0.0
    quality: float = 0.0
    feature: float = 0.5
    geographic: float = 0.5
    diversity: float = 1.0
    freshness: float = 0.5
    total: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "semantic": self.semantic,
            "quality": self.quality,
            "feature": self.feature,
            "geographic": self.geographic,
            "diversity": self.diversity,
            "freshness": self.freshness,
            "total": self.total,
        }


@dataclass
class ScoredCandidate:
    poi: POI
    scores: AxisScores
    matched_features: list[str] = field(default_factory=list)
    session_recent: bool = False


@dataclass(frozen=True)
class Bounds:
    ne: Coordinates
    sw: Coordinates

    def contains(self, point: Coordinates) -> bool:
        return self.sw.lat <= point.lat <= self.ne.lat and self.sw.lng <= point.lng <= self.ne.lng


@dataclass(frozen=True)
class Viewport:
    center: Coordinates
    zoom: int
    bounds: Bounds | None = None
    highlight_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class MapMarker:
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


@dataclass
class ReasonedRecommendation:
    poi: POI
    rank: int
    reasoning: str
    highlights: list[str] = field(default_factory=list)
    match_score: int = 0


@dataclass
class DiscoverySuggestion:
    poi: POI
    reason: str
    connection_to_query: str
    category: str


@dataclass
class SelectionStats:
    total_candidates: int = 0
    semantic_matches: int = 0
    interest_matches: int = 0
    geographic_matches: int = 0


@dataclass
class SelectionResult:
    markers: list[MapMarker] = field(default_factory=list)
    highlighted_ids: list[str] = field(default_factory=list)
    clustered_ids: list[str] = field(default_factory=list)
    viewport: Viewport | None = None
    stats: SelectionStats = field(default_factory=SelectionStats)
    intent: Intent | None = None
    top_recommendations: list[ReasonedRecommendation] | None = None
    discover_also: list[DiscoverySuggestion] | None = None
    debug: dict[str, Any] = field(default_factory=dict)
