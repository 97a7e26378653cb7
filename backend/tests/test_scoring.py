import pytest
from backend.app.recommender.intent import extract_intent
from backend.app.recommender.scoring import (
    CandidateScorer,
    filter_corpus,
    freshness_score,
    geographic_score,
    quality_score,
    semantic_score,
)
from backend.app.recommender.types import ConversationContext, Coordinates, LocationConstraint
from backend.app.settings import EngineConfig, WeightProfile

SEVEN_MILE = LocationConstraint(
    name="Seven Mile Beach", center=Coordinates(lat=19.335, lng=-81.385), radius_km=3
)
# roughly 30 km east of Seven Mile Beach
EAST_END = (19.30, -81.10)


class TestAxes:
    def test_quality_bands_and_social_proof(self, make_poi):
        assert quality_score(make_poi("a", rating=4.9, review_count=600)) == 1.0
        assert quality_score(make_poi("b", rating=4.6)) == 0.85
        assert quality_score(make_poi("c", rating=4.0, review_count=120)) == pytest.approx(0.8)
        assert quality_score(make_poi("d", rating=3.6, review_count=60)) == pytest.approx(0.55)
        assert quality_score(make_poi("e")) == 0.3

    def test_geographic_decays_with_distance(self, make_poi):
        at_center = make_poi("a")
        five_km = make_poi("b", lat=19.335 + 0.045)
        eight_km = make_poi("c", lat=19.335 + 0.072)
        far = make_poi("d", lat=EAST_END[0], lng=EAST_END[1])

        scores = [geographic_score(p, SEVEN_MILE) for p in (at_center, five_km, eight_km, far)]
        assert scores == [1.0, 0.7, 0.4, 0.1]
        assert geographic_score(far, None) == 0.5

    def test_freshness_rewards_complete_records(self, make_poi):
        bare = make_poi("a")
        complete = make_poi(
            "b", thumbnail="t.jpg", website="https://example.ky", has_opening_hours=True
        )
        assert freshness_score(bare) == 0.5
        assert freshness_score(complete) == pytest.approx(1.0)
        assert freshness_score(complete, shown_count=2, recency_penalty=0.1) == pytest.approx(1.0)
        assert freshness_score(complete, shown_count=4, recency_penalty=0.1) == pytest.approx(0.8)
        assert freshness_score(bare, shown_count=12, recency_penalty=0.1) == 0.0

    def test_semantic_uses_best_weighted_variant(self):
        variants = [{"a": 0.5}, {"a": 0.9, "b": 0.4}]
        assert semantic_score("a", variants) == pytest.approx(0.72)
        assert semantic_score("b", variants) == pytest.approx(0.32)
        assert semantic_score("c", variants) == 0.0
        assert semantic_score("a", None) == 0.0


class TestFilter:
    def test_drops_inactive_and_unlocatable(self, make_poi):
        pois = [
            make_poi("ok"),
            make_poi("closed", is_active=False),
            make_poi("nowhere", lat=None),
            make_poi("bad", lat=float("nan")),
            make_poi("off-map", lat=123.0),
        ]
        kept = filter_corpus(pois, None, frozenset(), 0.2)
        assert [p.id for p in kept] == ["ok"]

    def test_hidden_categories_need_session_interest(self, make_poi):
        pois = [make_poi("bank", category="financial_services"), make_poi("grill")]
        hidden = frozenset({"financial_services"})

        assert [p.id for p in filter_corpus(pois, ConversationContext(), hidden, 0.2)] == ["grill"]
        lukewarm = ConversationContext(interest_scores={"financial_services": 0.2})
        assert [p.id for p in filter_corpus(pois, lukewarm, hidden, 0.2)] == ["grill"]
        keen = ConversationContext(interest_scores={"financial_services": 0.6})
        assert [p.id for p in filter_corpus(pois, keen, hidden, 0.2)] == ["bank", "grill"]


class TestCandidateScorer:
    """Ranking behaviour of the combined score."""

    @pytest.fixture()
    def scorer(self, lexicon):
        return CandidateScorer(EngineConfig(), lexicon)

    def test_nearby_beats_far_better_rated_without_semantics(self, scorer, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        far = make_poi("far", rating=5.0, lat=EAST_END[0], lng=EAST_END[1])
        near = make_poi("near", rating=3.6)

        ranked = scorer.score(intent, [far, near])

        assert [c.poi.id for c in ranked] == ["near", "far"]
        assert ranked[0].scores.total == pytest.approx(0.48 / 0.65)
        assert ranked[1].scores.total == pytest.approx(0.375 / 0.65)

    def test_semantic_weight_joins_the_total(self, scorer, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        near = make_poi("near", rating=3.6)

        [candidate] = scorer.score(intent, [near], semantic=[{"near": 1.0}])
        assert candidate.scores.semantic == 1.0
        assert candidate.scores.total == pytest.approx(0.83)

    def test_totals_stay_in_unit_interval(self, scorer, corpus):
        intent = extract_intent("romantic luxury dinner with ocean views near seven mile beach")
        usable = filter_corpus(corpus, None, frozenset(), 0.2)
        for candidate in scorer.score(intent, usable, semantic=[{p.id: 1.0 for p in usable}]):
            for value in candidate.scores.as_dict().values():
                assert 0.0 <= value <= 1.0

    def test_low_scores_are_cut(self, scorer, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        weak = make_poi("weak", category="bar", lat=EAST_END[0], lng=EAST_END[1])
        assert scorer.score(intent, [weak]) == []

    def test_session_recent_places_bypass_the_cut(self, scorer, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        weak = make_poi("weak", category="bar", lat=EAST_END[0], lng=EAST_END[1])
        context = ConversationContext(recent_place_ids=("weak",), message_count=1)

        [candidate] = scorer.score(intent, [weak], context)

        assert candidate.session_recent is True
        assert candidate.scores.total == pytest.approx(0.24 / 0.65 + 0.5)

    def test_only_the_first_ten_recent_ids_are_boosted(self, scorer, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        weak = make_poi("weak", category="bar", lat=EAST_END[0], lng=EAST_END[1])
        recent = tuple(f"other-{i}" for i in range(10)) + ("weak",)
        context = ConversationContext(recent_place_ids=recent, message_count=3)

        assert scorer.score(intent, [weak], context) == []

    def test_context_focus_stands_in_for_missing_location(self, scorer, make_poi):
        intent = extract_intent("restaurant")
        near = make_poi("near")
        context = ConversationContext(geographic_focus=SEVEN_MILE, message_count=1)

        [candidate] = scorer.score(intent, [near], context)
        assert candidate.scores.geographic == 1.0

    def test_must_haves_and_category_feed_feature_axis(self, scorer, make_poi):
        intent = extract_intent("restaurant with a pool and ocean view")
        both = make_poi("both", tags=("pool", "ocean view"))
        one = make_poi("one", tags=("pool",))

        ranked = {c.poi.id: c for c in scorer.score(intent, [both, one])}
        assert ranked["both"].matched_features == ["ocean view", "pool"]
        assert ranked["one"].matched_features == ["pool"]
        assert ranked["both"].scores.feature > ranked["one"].scores.feature

    def test_equal_scores_keep_corpus_order(self, scorer, make_poi):
        intent = extract_intent("beach near seven mile beach")
        twins = [make_poi(f"twin-{i}", category="beach", rating=4.5) for i in range(5)]
        ranked = scorer.score(intent, twins)
        assert [c.poi.id for c in ranked] == [f"twin-{i}" for i in range(5)]

    def test_live_refresh_profile_changes_weights(self, lexicon, make_poi):
        intent = extract_intent("restaurant near seven mile beach")
        near = make_poi("near", rating=3.6)
        config = EngineConfig(weights=WeightProfile.named("live_refresh"))

        [candidate] = CandidateScorer(config, lexicon).score(intent, [near], semantic=[{"near": 1.0}])
        # profile weights sum to 1.05
        assert candidate.scores.total == pytest.approx(0.905 / 1.05)
