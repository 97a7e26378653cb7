from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .types import CATEGORIES, Coordinates, LocationConstraint

logger = logging.getLogger(__name__)

DEFAULT_LEXICON_PATH = Path(__file__).resolve().parents[1] / "data" / "intent_lexicon.json"


def display_name(category: str) -> str:
    return category.replace("_", " ")


def _phrase_pattern(phrases: list[str]) -> re.Pattern[str] | None:
    # Anchored at a word start so "eat" does not fire inside "great" while
    # "snorkel" still matches "snorkeling".
    cleaned = sorted({p.strip().lower() for p in phrases if p and p.strip()}, key=len, reverse=True)
    if not cleaned:
        return None
    alternatives = "|".join(re.escape(p) for p in cleaned)
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})")


@dataclass(frozen=True)
class GazetteerEntry:
    key: str
    location: LocationConstraint


@dataclass(frozen=True)
class PatternRule:
    label: str
    pattern: re.Pattern[str]
    extra: str | None = None

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class PrimaryIntentRule:
    intent: str
    categories: frozenset[str]
    experience: frozenset[str]


@dataclass(frozen=True)
class IntentLexicon:
    """Trigger tables for intent extraction, loaded from JSON.

    Everything is immutable after load so one lexicon can be shared by every
    request handled by an engine.
    """

    atmosphere: Mapping[str, tuple[str, ...]]
    experience: Mapping[str, tuple[str, ...]]
    categories: Mapping[str, tuple[str, ...]]
    related_categories: Mapping[str, tuple[str, ...]]
    gazetteer: tuple[GazetteerEntry, ...]
    price_tiers: tuple[PatternRule, ...]
    time_of_day: tuple[PatternRule, ...]
    group_types: tuple[PatternRule, ...]
    must_have_features: tuple[PatternRule, ...]
    implicit_needs: Mapping[str, tuple[str, ...]]
    nice_to_have_by_category: Mapping[str, tuple[str, ...]]
    nice_to_have_by_atmosphere: Mapping[str, tuple[str, ...]]
    primary_intents: tuple[PrimaryIntentRule, ...]
    discovery_connections: Mapping[tuple[str, str], str]
    category_transitions: Mapping[str, tuple[str, ...]]
    default_categories: tuple[str, ...]
    hidden_categories: frozenset[str]
    home_view: tuple[Coordinates, int]
    _compiled: dict[str, dict[str, re.Pattern[str]]] = field(
        default_factory=dict, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for table_name in ("atmosphere", "experience", "categories"):
            table: Mapping[str, tuple[str, ...]] = getattr(self, table_name)
            compiled: dict[str, re.Pattern[str]] = {}
            for label, phrases in table.items():
                pattern = _phrase_pattern(list(phrases))
                if pattern is not None:
                    compiled[label] = pattern
            self._compiled[table_name] = compiled

    # ---------- matchers ----------

    def _match_table(self, table_name: str, text: str) -> list[str]:
        hits: list[str] = []
        for label, pattern in self._compiled[table_name].items():
            if pattern.search(text):
                hits.append(label)
        return hits

    def match_atmosphere(self, text: str) -> list[str]:
        return self._match_table("atmosphere", text)

    def match_experience(self, text: str) -> list[str]:
        return self._match_table("experience", text)

    def match_categories(self, text: str) -> list[str]:
        return self._match_table("categories", text)

    def match_location(self, text: str) -> LocationConstraint | None:
        for entry in self.gazetteer:
            if entry.key in text:
                return entry.location
        return None

    @staticmethod
    def _first_rule(rules: tuple[PatternRule, ...], text: str) -> PatternRule | None:
        for rule in rules:
            if rule.matches(text):
                return rule
        return None

    def match_price(self, text: str) -> PatternRule | None:
        return self._first_rule(self.price_tiers, text)

    def match_time_of_day(self, text: str) -> str | None:
        rule = self._first_rule(self.time_of_day, text)
        return rule.label if rule else None

    def match_group_type(self, text: str) -> str | None:
        rule = self._first_rule(self.group_types, text)
        return rule.label if rule else None

    def match_must_haves(self, text: str) -> list[str]:
        return [rule.label for rule in self.must_have_features if rule.matches(text)]

    def related_for(self, categories: list[str]) -> list[str]:
        seen = set(categories)
        related: list[str] = []
        for category in categories:
            for other in self.related_categories.get(category, ()):
                if other not in seen:
                    seen.add(other)
                    related.append(other)
        return related

    def connection_sentence(self, tags: list[str], category: str) -> str | None:
        for tag in tags:
            sentence = self.discovery_connections.get((tag, category))
            if sentence:
                return sentence
        return None

    def atmosphere_hits(self, tags: list[str], text: str) -> int:
        """Number of atmosphere tags whose triggers appear in ``text``."""
        compiled = self._compiled["atmosphere"]
        return sum(1 for tag in tags if tag in compiled and compiled[tag].search(text))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> IntentLexicon:
        def _table(key: str) -> dict[str, tuple[str, ...]]:
            raw = payload.get(key) or {}
            return {str(k): tuple(str(v).lower() for v in values) for k, values in raw.items()}

        def _rules(key: str, label_key: str, extra_key: str | None = None) -> tuple[PatternRule, ...]:
            rules: list[PatternRule] = []
            for item in payload.get(key) or []:
                try:
                    pattern = re.compile(item["pattern"], re.IGNORECASE)
                except (KeyError, re.error) as exc:
                    raise ValueError(f"Invalid {key} rule {item!r}: {exc}") from exc
                rules.append(
                    PatternRule(
                        label=str(item[label_key]),
                        pattern=pattern,
                        extra=item.get(extra_key) if extra_key else None,
                    )
                )
            return tuple(rules)

        categories = _table("categories")
        unknown = sorted(set(categories) - set(CATEGORIES))
        if unknown:
            raise ValueError(f"Lexicon references unknown categories: {', '.join(unknown)}")
        # the display name of every category must re-detect it
        for category in CATEGORIES:
            triggers = categories.get(category, ())
            name = display_name(category)
            if name not in triggers:
                categories[category] = (name, *triggers)

        gazetteer = tuple(
            GazetteerEntry(
                key=str(item["key"]).lower(),
                location=LocationConstraint(
                    name=item.get("name") or item["key"],
                    center=Coordinates(lat=float(item["lat"]), lng=float(item["lng"])),
                    radius_km=float(item["radius_km"]),
                    district=item.get("district"),
                    island=item.get("island"),
                ),
            )
            for item in payload.get("gazetteer") or []
        )

        nice = payload.get("nice_to_have") or {}
        primary = tuple(
            PrimaryIntentRule(
                intent=str(item["intent"]),
                categories=frozenset(item.get("categories") or []),
                experience=frozenset(item.get("experience") or []),
            )
            for item in payload.get("primary_intents") or []
        )
        connections = {
            (str(item["when"]), str(item["category"])): str(item["sentence"])
            for item in payload.get("discovery_connections") or []
        }
        home = payload.get("home_view") or {"lat": 19.313, "lng": -81.255, "zoom": 11}

        return cls(
            atmosphere=_table("atmosphere"),
            experience=_table("experience"),
            categories=categories,
            related_categories={
                str(k): tuple(v) for k, v in (payload.get("related_categories") or {}).items()
            },
            gazetteer=gazetteer,
            price_tiers=_rules("price_tiers", "level", "flexibility"),
            time_of_day=_rules("time_of_day", "label"),
            group_types=_rules("group_types", "label"),
            must_have_features=_rules("must_have_features", "feature"),
            implicit_needs=_table("implicit_needs"),
            nice_to_have_by_category={
                str(k): tuple(v) for k, v in (nice.get("categories") or {}).items()
            },
            nice_to_have_by_atmosphere={
                str(k): tuple(v) for k, v in (nice.get("atmosphere") or {}).items()
            },
            primary_intents=primary,
            discovery_connections=connections,
            category_transitions={
                str(k): tuple(v) for k, v in (payload.get("category_transitions") or {}).items()
            },
            default_categories=tuple(payload.get("default_categories") or ()),
            hidden_categories=frozenset(payload.get("hidden_categories") or ()),
            home_view=(
                Coordinates(lat=float(home["lat"]), lng=float(home["lng"])),
                int(home.get("zoom", 11)),
            ),
        )


def load_lexicon(path: Path | None = None) -> IntentLexicon:
    target = Path(path) if path else DEFAULT_LEXICON_PATH
    payload = json.loads(target.read_text(encoding="utf-8"))
    lexicon = IntentLexicon.from_dict(payload)
    logger.info(
        "Loaded intent lexicon from %s (%d categories, %d places)",
        target,
        len(lexicon.categories),
        len(lexicon.gazetteer),
    )
    return lexicon


@lru_cache(maxsize=1)
def bundled_lexicon() -> IntentLexicon:
    return load_lexicon(DEFAULT_LEXICON_PATH)
