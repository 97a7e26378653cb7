from __future__ import annotations

import math
from collections.abc import Iterable

from .types import Bounds, Coordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in km."""
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(dlng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_valid_coordinate(lat: object, lng: object) -> bool:
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not math.isfinite(lat) or not math.isfinite(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def has_valid_coordinates(coords: Coordinates | None) -> bool:
    return coords is not None and is_valid_coordinate(coords.lat, coords.lng)


def bounding_box(points: Iterable[Coordinates], padding: float = 0.0) -> Bounds | None:
    pts = list(points)
    if not pts:
        return None
    lats = [p.lat for p in pts]
    lngs = [p.lng for p in pts]
    return Bounds(
        ne=Coordinates(lat=max(lats) + padding, lng=max(lngs) + padding),
        sw=Coordinates(lat=min(lats) - padding, lng=min(lngs) - padding),
    )


def centroid(points: Iterable[Coordinates]) -> Coordinates | None:
    pts = list(points)
    if not pts:
        return None
    return Coordinates(
        lat=sum(p.lat for p in pts) / len(pts),
        lng=sum(p.lng for p in pts) / len(pts),
    )
