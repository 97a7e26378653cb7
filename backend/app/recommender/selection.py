from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..settings import EngineConfig
from .scoring import freshness_score, quality_score
from .types import POI, AxisScores, MapMarker, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_CAP = 5


@dataclass
class Selection:
    candidates: list[ScoredCandidate] = field(default_factory=list)
    highlighted_ids: list[str] = field(default_factory=list)
    clustered_ids: list[str] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [c.poi.id for c in self.candidates]


def default_category_cap(max_total: int) -> int:
    return max(1, math.ceil(max_total / 4))


class DiversitySelector:
    def __init__(
        self,
        max_total: int = 35,
        max_highlighted: int = 8,
        per_category_cap: int | None = None,
        diversity_weight: float = 0.15,
    ) -> None:
        self.max_total = max(0, max_total)
        self.max_highlighted = max(0, min(max_highlighted, self.max_total))
        self.per_category_cap = (
            per_category_cap if per_category_cap is not None else default_category_cap(self.max_total)
        )
        self.diversity_weight = diversity_weight

    @classmethod
    def from_config(cls, config: EngineConfig) -> DiversitySelector:
        return cls(
            max_total=config.max_total,
            max_highlighted=config.max_highlighted,
            per_category_cap=config.per_category_cap,
            diversity_weight=config.diversity_weight,
        )

    def select(self, candidates: Sequence[ScoredCandidate]) -> Selection:
        """Greedy walk over score-ordered candidates under the per-category cap."""
        selection = Selection()
        if self.max_total == 0:
            return selection
        counts: dict[str, int] = defaultdict(int)
        for candidate in candidates:
            category = candidate.poi.category
            already = counts[category]
            if already >= self.per_category_cap:
                continue
            candidate.scores.diversity = 1.0 - min(1.0, already * self.diversity_weight)
            counts[category] = already + 1
            selection.candidates.append(candidate)
            if len(selection.candidates) >= self.max_total:
                break

        ids = selection.ids
        selection.highlighted_ids = ids[: self.max_highlighted]
        selection.clustered_ids = ids[self.max_highlighted :]
        return selection


def default_selection(
    pois: Sequence[POI],
    categories: Sequence[str],
    config: EngineConfig,
    per_category_cap: int = DEFAULT_CATEGORY_CAP,
) -> Selection:
    """Quality-ranked picks from the default categories for a brand-new session."""
    wanted = set(categories)
    pool: list[ScoredCandidate] = []
    for poi in pois:
        if poi.category not in wanted:
            continue
        quality = quality_score(poi)
        pool.append(
            ScoredCandidate(
                poi=poi,
                scores=AxisScores(
                    quality=quality,
                    freshness=freshness_score(poi),
                    total=quality,
                ),
            )
        )
    pool.sort(key=lambda c: c.scores.total, reverse=True)
    selector = DiversitySelector(
        max_total=config.max_total,
        max_highlighted=config.max_highlighted,
        per_category_cap=per_category_cap,
        diversity_weight=config.diversity_weight,
    )
    return selector.select(pool)


def to_marker(candidate: ScoredCandidate, highlighted: bool) -> MapMarker:
    poi = candidate.poi
    if poi.coordinates is None:
        raise ValueError(f"POI {poi.id} has no coordinates and cannot be placed on the map")
    return MapMarker(
        id=f"marker-{poi.id}",
        poi_id=poi.id,
        latitude=poi.coordinates.lat,
        longitude=poi.coordinates.lng,
        title=poi.name,
        category=poi.category,
        subtitle=poi.short_description or None,
        thumbnail=poi.thumbnail,
        rating=poi.rating or None,
        review_count=poi.review_count or None,
        price_range=poi.price_range,
        address=poi.address,
        website=poi.website,
        is_highlighted=highlighted,
    )


def build_markers(selection: Selection) -> list[MapMarker]:
    highlighted = set(selection.highlighted_ids)
    return [to_marker(c, c.poi.id in highlighted) for c in selection.candidates]
