import pytest
from backend.app.recommender.context import MAX_RECENT_PLACES, ContextTracker
from backend.app.recommender.types import ConversationContext, Coordinates, LocationConstraint


@pytest.fixture()
def tracker(lexicon):
    return ContextTracker(lexicon)


def test_first_message(tracker):
    context = tracker.update(ConversationContext(), "Any quiet beaches in West Bay?", ["beach-cemetery"])

    assert context.interest_scores == {"beach": pytest.approx(0.4)}
    assert context.geographic_focus.name == "West Bay"
    assert context.recent_place_ids == ("beach-cemetery",)
    assert context.message_count == 1
    assert context.last_query == "Any quiet beaches in West Bay?"


def test_interests_decay_and_fade(tracker):
    start = ConversationContext(interest_scores={"hotel": 1.0, "bar": 0.06}, message_count=4)
    context = tracker.update(start, "hmm")

    assert context.interest_scores == {"hotel": pytest.approx(0.8)}
    # the input snapshot is untouched
    assert start.interest_scores == {"hotel": 1.0, "bar": 0.06}


def test_detected_categories_get_smaller_boost(tracker):
    context = tracker.update(ConversationContext(), "a spa please", detected_categories=["hotel"])
    assert context.interest_scores["spa_wellness"] == pytest.approx(0.4)
    assert context.interest_scores["hotel"] == pytest.approx(0.25)


def test_interest_is_capped(tracker):
    start = ConversationContext(interest_scores={"bar": 0.9})
    context = tracker.update(start, "another bar", detected_categories=["bar"])
    assert context.interest_scores["bar"] == 1.0


def test_recent_places_keep_repeats_and_cap(tracker):
    start = ConversationContext(recent_place_ids=tuple(f"p{i}" for i in range(MAX_RECENT_PLACES)))
    context = tracker.update(start, "and again", ["p0", "new"])

    assert len(context.recent_place_ids) == MAX_RECENT_PLACES
    assert context.recent_place_ids[:3] == ("p0", "new", "p0")


def test_near_me_keeps_focus_or_falls_back(tracker):
    context = tracker.update(ConversationContext(), "restaurants near me")
    assert context.geographic_focus.name == "Grand Cayman"
    assert context.geographic_focus.radius_km == 10

    camana = LocationConstraint(
        name="Camana Bay", center=Coordinates(lat=19.328, lng=-81.378), radius_km=1
    )
    context = tracker.update(ConversationContext(geographic_focus=camana), "anything nearby?")
    assert context.geographic_focus == camana


def test_predicted_interests_follow_transitions(tracker):
    context = tracker.update(ConversationContext(), "a beach day")
    assert context.predicted_interests == (
        "diving_snorkeling",
        "water_sports",
        "boat_charter",
        "restaurant",
    )


def test_strong_interests_are_not_predicted(tracker):
    start = ConversationContext(interest_scores={"hotel": 1.0, "restaurant": 0.9})
    context = tracker.update(start, "ok")

    assert "restaurant" not in context.predicted_interests
    assert context.predicted_interests == ("beach", "bar", "attraction", "spa_wellness", "nightclub")
