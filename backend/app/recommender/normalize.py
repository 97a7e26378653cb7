from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .geo import is_valid_coordinate
from .types import CATEGORIES, POI, Coordinates

logger = logging.getLogger(__name__)

PRICE_LEVELS = ("budget", "mid", "upscale", "luxury", "ultra-luxury")

TRUE_STRINGS = frozenset({"true", "yes", "1", "y"})
FALSE_STRINGS = frozenset({"false", "no", "0", "n", ""})


def _to_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return [value]


def _strings(value: Any) -> tuple[str, ...]:
    out: list[str] = []
    for item in _to_list(value):
        if item is None:
            continue
        text = str(item).strip()
        if text:
            out.append(text)
    return tuple(out)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _block(item: dict[str, Any], *keys: str) -> dict[str, Any]:
    """First non-empty nested object under keys; any other shape is malformed."""
    for key in keys:
        value = item.get(key)
        if value is None or value == {}:
            continue
        if not isinstance(value, dict):
            raise ValueError(f"{key!r} must be an object, got {type(value).__name__}")
        return value
    return {}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
        raise ValueError(f"cannot read {value!r} as a boolean")
    return bool(value)


def normalize_price_range(value: Any) -> str | None:
    """Collapse '$$ - $$$' style values to a single tier of 1-5 dollar signs."""
    if not value:
        return None
    text = str(value).strip()
    groups = re.findall(r"\$+", text)
    if not groups:
        return None
    band = int(math.ceil(sum(len(g) for g in groups) / len(groups)))
    return "$" * min(5, max(1, band))


def price_tier_to_level(price_range: str | None) -> str | None:
    if not price_range:
        return None
    band = min(5, max(1, price_range.count("$")))
    return PRICE_LEVELS[band - 1]


def _coordinates(item: dict[str, Any], location: dict[str, Any]) -> Coordinates | None:
    coords = _block(item, "coordinates")
    lat = location.get("latitude", coords.get("lat", item.get("latitude")))
    lng = location.get("longitude", coords.get("lng", item.get("longitude")))
    if lat is None or lng is None:
        return None
    lat_f, lng_f = _as_float(lat), _as_float(lng)
    if lat_f is None or lng_f is None:
        # kept on the record so the validity filter can drop it later
        return Coordinates(lat=math.nan, lng=math.nan)
    return Coordinates(lat=lat_f, lng=lng_f)


def poi_from_dict(item: dict[str, Any]) -> POI:
    """Build a POI from either the nested knowledge-base shape or a flat record.

    Raises ValueError for records that cannot be interpreted at all.
    """
    if not isinstance(item, dict):
        raise ValueError(f"POI record must be an object, got {type(item).__name__}")
    poi_id = item.get("id")
    name = item.get("name")
    if not poi_id or not name:
        raise ValueError("POI record is missing id or name")
    category = str(item.get("category") or "").strip()
    if category not in CATEGORIES:
        raise ValueError(f"POI {poi_id} has unknown category {category!r}")

    # Handle nested location/contact/media blocks, falling back to top-level keys
    location = item.get("location") if isinstance(item.get("location"), dict) else {}
    contact = _block(item, "contact")
    media = _block(item, "media")
    business = _block(item, "business")
    ratings = _block(item, "ratings")
    custom = _block(item, "customFields", "custom_fields")

    rating = _as_float(ratings.get("overall", item.get("rating"))) or 0.0
    review_count = ratings.get("reviewCount", item.get("review_count", 0))
    try:
        review_count = max(0, int(review_count or 0))
    except (TypeError, ValueError):
        review_count = 0

    return POI(
        id=str(poi_id),
        name=str(name).strip(),
        category=category,
        subcategory=item.get("subcategory"),
        description=str(item.get("description") or ""),
        short_description=str(item.get("shortDescription") or item.get("short_description") or ""),
        highlights=_strings(item.get("highlights") or custom.get("highlights")),
        tags=_strings(item.get("tags")),
        keywords=_strings(item.get("keywords")),
        coordinates=_coordinates(item, location),
        address=location.get("address") or item.get("address"),
        island=location.get("island") or item.get("island"),
        district=location.get("district") or item.get("district"),
        area=location.get("area") or item.get("area"),
        price_range=normalize_price_range(business.get("priceRange") or item.get("price_range")),
        currency=business.get("currency") or item.get("currency"),
        has_opening_hours=bool(business.get("openingHours") or item.get("opening_hours")),
        rating=min(5.0, max(0.0, rating)),
        review_count=review_count,
        thumbnail=media.get("thumbnail") or item.get("thumbnail") or None,
        website=contact.get("website") or item.get("website") or None,
        phone=contact.get("phone") or item.get("phone") or None,
        is_active=_as_bool(item.get("isActive", item.get("is_active")), True),
        is_featured=_as_bool(item.get("isFeatured", item.get("is_featured")), False),
    )


def parse_corpus(records: Iterable[Any]) -> list[POI]:
    pois: list[POI] = []
    seen: set[str] = set()
    for idx, item in enumerate(records):
        try:
            poi = poi_from_dict(item)
        except ValueError as exc:
            logger.warning("Skipping malformed POI record #%d: %s", idx, exc)
            continue
        if poi.id in seen:
            logger.warning("Skipping duplicate POI id %s", poi.id)
            continue
        seen.add(poi.id)
        pois.append(poi)
    return pois


def load_corpus(path: Path) -> list[POI]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("pois") or payload.get("nodes") or []
    pois = parse_corpus(payload)
    invalid = sum(
        1
        for p in pois
        if p.coordinates is None or not is_valid_coordinate(p.coordinates.lat, p.coordinates.lng)
    )
    logger.info("Loaded %d POIs from %s (%d without usable coordinates)", len(pois), path, invalid)
    return pois
