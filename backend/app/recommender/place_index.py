from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from threading import Lock
from typing import Literal

from .types import POI

logger = logging.getLogger(__name__)

MIN_MATCH_LENGTH = 4
_STOPWORDS = {"the", "a", "an", "of", "at", "in", "on"}
_BOUNDARY = set(" \t\n\r.,;:!?\"'()[]{}")
_LOCATION_SUFFIXES = (
    re.compile(r",?\s*(grand\s+)?cayman(\s+islands?)?$"),
    re.compile(r",?\s*seven\s+mile\s+beach$"),
    re.compile(r",?\s*george\s+town$"),
    re.compile(r",?\s*west\s+bay$"),
)


@dataclass(frozen=True)
class PlaceMatch:
    poi: POI
    start: int
    end: int
    match_type: Literal["exact", "alias"]
    confidence: float


def generate_aliases(name: str) -> list[str]:
    lower = name.lower().strip()
    aliases = [lower]

    without_article = re.sub(r"^(the|a)\s+", "", lower)
    if without_article != lower:
        aliases.append(without_article)

    without_suffix = lower
    for pattern in _LOCATION_SUFFIXES:
        without_suffix = pattern.sub("", without_suffix)
    without_suffix = without_suffix.strip()
    if without_suffix != lower and len(without_suffix) > 3:
        aliases.append(without_suffix)

    # "The Ritz-Carlton, Grand Cayman" -> "ritz", "ritz carlton"
    words = [w for w in re.split(r"[\s,\-]+", lower) if len(w) > 2]
    significant = [w for w in words if w not in _STOPWORDS]
    if significant:
        if len(significant[0]) >= MIN_MATCH_LENGTH:
            aliases.append(significant[0])
        if len(significant) >= 2:
            aliases.append(" ".join(significant[:2]))

    dehyphenated = lower.replace("-", " ")
    if dehyphenated != lower:
        aliases.append(dehyphenated)

    without_possessive = re.sub(r"s'\s*", "s ", re.sub(r"'s\s*", " ", lower)).strip()
    if without_possessive != lower:
        aliases.append(without_possessive)

    return list(dict.fromkeys(aliases))


def _is_bounded(text: str, start: int, end: int) -> bool:
    before = text[start - 1] if start > 0 else " "
    after = text[end] if end < len(text) else " "
    return before in _BOUNDARY and after in _BOUNDARY


class PlaceNameIndex:
    """Name and alias lookup over a corpus snapshot.

    Built explicitly with ``build``; ``refresh`` swaps in a new snapshot in one
    step so readers never observe a half-built index.
    """

    def __init__(self) -> None:
        self._names: dict[str, POI] = {}
        self._aliases: dict[str, POI] = {}
        self._lock = Lock()

    @classmethod
    def build(cls, corpus: Sequence[POI]) -> PlaceNameIndex:
        index = cls()
        index.refresh(corpus)
        return index

    @staticmethod
    def _tables(corpus: Sequence[POI]) -> tuple[dict[str, POI], dict[str, POI]]:
        names: dict[str, POI] = {}
        aliases: dict[str, POI] = {}
        for poi in corpus:
            if not poi.is_active or not poi.name:
                continue
            names.setdefault(poi.name.lower().strip(), poi)
            for alias in generate_aliases(poi.name):
                aliases.setdefault(alias, poi)
        # longest first so the most specific name claims a span
        ordered_names = dict(sorted(names.items(), key=lambda kv: (-len(kv[0]), kv[0])))
        ordered_aliases = dict(sorted(aliases.items(), key=lambda kv: (-len(kv[0]), kv[0])))
        return ordered_names, ordered_aliases

    def refresh(self, corpus: Sequence[POI]) -> None:
        names, aliases = self._tables(corpus)
        with self._lock:
            self._names = names
            self._aliases = aliases
        logger.info("Place name index holds %d names, %d aliases", len(names), len(aliases))

    def __len__(self) -> int:
        return len(self._names)

    def find_matches(self, text: str) -> list[PlaceMatch]:
        with self._lock:
            names = self._names
            aliases = self._aliases
        lowered = text.lower()
        used: list[tuple[int, int]] = []
        matches: list[PlaceMatch] = []

        def overlaps(start: int, end: int) -> bool:
            return any(start < e and end > s for s, e in used)

        def scan(table: dict[str, POI], match_type: Literal["exact", "alias"]) -> None:
            for needle, poi in table.items():
                if len(needle) < MIN_MATCH_LENGTH:
                    continue
                pos = lowered.find(needle)
                while pos != -1:
                    end = pos + len(needle)
                    if _is_bounded(lowered, pos, end) and not overlaps(pos, end):
                        if match_type == "exact":
                            confidence = 1.0
                        else:
                            ratio = len(needle) / max(1, len(poi.name))
                            confidence = min(0.9, 0.5 + ratio * 0.4)
                        matches.append(PlaceMatch(poi, pos, end, match_type, confidence))
                        used.append((pos, end))
                    pos = lowered.find(needle, pos + 1)

        scan(names, "exact")
        scan(aliases, "alias")
        matches.sort(key=lambda m: m.start)
        return matches

    def mentioned_ids(self, text: str) -> list[str]:
        return list(dict.fromkeys(m.poi.id for m in self.find_matches(text)))
