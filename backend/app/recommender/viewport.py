from __future__ import annotations

import math
from collections.abc import Sequence

from .geo import bounding_box, centroid
from .types import Coordinates, LocationConstraint, ScoredCandidate, Viewport

# (max radius km, zoom) pairs, checked in order
RADIUS_ZOOM = ((1.0, 16), (3.0, 14), (5.0, 13), (10.0, 12))
WIDE_RADIUS_ZOOM = 10
# (min bbox diagonal in degrees, zoom) pairs, checked in order
SPREAD_ZOOM = ((0.4, 10), (0.2, 11), (0.1, 12), (0.05, 13), (0.02, 14))
TIGHT_SPREAD_ZOOM = 15
SINGLE_POI_ZOOM = 15
CENTROID_TOP_N = 5


def zoom_for_radius(radius_km: float) -> int:
    for limit, zoom in RADIUS_ZOOM:
        if radius_km <= limit:
            return zoom
    return WIDE_RADIUS_ZOOM


def zoom_for_spread(diagonal_deg: float) -> int:
    for limit, zoom in SPREAD_ZOOM:
        if diagonal_deg > limit:
            return zoom
    return TIGHT_SPREAD_ZOOM


def compute_viewport(
    selected: Sequence[ScoredCandidate],
    location: LocationConstraint | None = None,
    padding: float = 0.01,
    highlight_ids: Sequence[str] = (),
) -> Viewport | None:
    """Map focus for a selection.

    An explicit location wins; otherwise the view centres on the best five
    selected POIs and zooms to fit the spread of the whole selection.
    """
    points = [c.poi.coordinates for c in selected if c.poi.coordinates is not None]
    bounds = bounding_box(points, padding) if len(points) > 1 else None
    highlights = tuple(highlight_ids)

    if location is not None:
        return Viewport(
            center=location.center,
            zoom=zoom_for_radius(location.radius_km),
            bounds=bounds,
            highlight_ids=highlights,
        )
    if not points:
        return None
    if len(points) == 1:
        return Viewport(center=points[0], zoom=SINGLE_POI_ZOOM, highlight_ids=highlights)

    ranked = sorted(selected, key=lambda c: c.scores.total, reverse=True)
    top = [c.poi.coordinates for c in ranked[:CENTROID_TOP_N] if c.poi.coordinates is not None]
    center = centroid(top) or points[0]
    lat_span = max(p.lat for p in points) - min(p.lat for p in points)
    lng_span = max(p.lng for p in points) - min(p.lng for p in points)
    return Viewport(
        center=center,
        zoom=zoom_for_spread(math.hypot(lat_span, lng_span)),
        bounds=bounds,
        highlight_ids=highlights,
    )


def home_viewport(center: Coordinates, zoom: int) -> Viewport:
    return Viewport(center=center, zoom=zoom)
