"""Conversational POI recommendation: intent, scoring, selection and map focus."""

from .context import ContextTracker
from .engine import RecommendationEngine
from .intent import IntentExtractor, extract_intent
from .lexicon import IntentLexicon, load_lexicon
from .normalize import load_corpus
from .place_index import PlaceNameIndex

__all__ = [
    "ContextTracker",
    "IntentExtractor",
    "IntentLexicon",
    "PlaceNameIndex",
    "RecommendationEngine",
    "extract_intent",
    "load_corpus",
    "load_lexicon",
]
