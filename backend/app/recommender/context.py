from __future__ import annotations

import logging
from collections.abc import Sequence

from .lexicon import IntentLexicon, bundled_lexicon
from .types import ConversationContext, LocationConstraint

logger = logging.getLogger(__name__)

INTEREST_DECAY = 0.8
MIN_INTEREST = 0.05
MAX_RECENT_PLACES = 30
MESSAGE_CATEGORY_BOOST = 0.4
DETECTED_CATEGORY_BOOST = 0.25
MAX_PREDICTED = 5
NEAR_ME_RADIUS_KM = 10.0


class ContextTracker:
    """Session helper owned by the calling layer.

    Every update returns a fresh ``ConversationContext``; snapshots handed to
    the engine are never modified afterwards.
    """

    def __init__(self, lexicon: IntentLexicon | None = None) -> None:
        self.lexicon = lexicon or bundled_lexicon()

    def _focus(self, text: str, current: LocationConstraint | None) -> LocationConstraint | None:
        named = self.lexicon.match_location(text)
        if named is not None:
            return named
        if "near me" in text or "nearby" in text:
            if current is not None:
                return current
            center, _zoom = self.lexicon.home_view
            return LocationConstraint(
                name="Grand Cayman",
                center=center,
                radius_km=NEAR_ME_RADIUS_KM,
                island="Grand Cayman",
            )
        return current

    def _predict(self, interests: dict[str, float]) -> tuple[str, ...]:
        predictions: dict[str, float] = {}
        for category, score in interests.items():
            for idx, nxt in enumerate(self.lexicon.category_transitions.get(category, ())):
                # earlier transitions are more likely
                predictions[nxt] = predictions.get(nxt, 0.0) + score * (1 - idx * 0.15)
        ranked = sorted(
            (item for item in predictions.items() if interests.get(item[0], 0.0) < 0.5),
            key=lambda item: (-item[1], item[0]),
        )
        return tuple(cat for cat, _ in ranked[:MAX_PREDICTED])

    def update(
        self,
        context: ConversationContext,
        user_message: str,
        mentioned_place_ids: Sequence[str] = (),
        detected_categories: Sequence[str] = (),
    ) -> ConversationContext:
        text = (user_message or "").lower()

        interests: dict[str, float] = {}
        for category, score in context.interest_scores.items():
            decayed = score * INTEREST_DECAY
            if decayed >= MIN_INTEREST:
                interests[category] = decayed

        from_message = self.lexicon.match_categories(text)
        for category in dict.fromkeys([*detected_categories, *from_message]):
            boost = MESSAGE_CATEGORY_BOOST if category in from_message else DETECTED_CATEGORY_BOOST
            interests[category] = min(1.0, interests.get(category, 0.0) + boost)

        # repeats are kept; the scorer counts them for the recency penalty
        recent = (*mentioned_place_ids, *context.recent_place_ids)

        updated = ConversationContext(
            interest_scores=interests,
            recent_place_ids=recent[:MAX_RECENT_PLACES],
            geographic_focus=self._focus(text, context.geographic_focus),
            predicted_interests=self._predict(interests),
            message_count=context.message_count + 1,
            last_query=user_message or "",
        )
        logger.debug(
            "Context updated: %d interests, %d recent places",
            len(interests),
            len(updated.recent_place_ids),
        )
        return updated
