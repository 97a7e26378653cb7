import asyncio
import math
from collections import Counter

import pytest
from backend.app.recommender.engine import RecommendationEngine
from backend.app.recommender.types import ChatTurn, ConversationContext
from backend.app.settings import EngineConfig

UNUSABLE = {"rest-lost-coordinates", "rest-no-location", "rest-old-harbour-grill"}


class FailingSearcher:
    async def embed_query(self, text):
        raise RuntimeError("embedding service down")

    def search(self, vector, k):
        return []


class SlowSearcher:
    async def embed_query(self, text):
        await asyncio.sleep(1)

    def search(self, vector, k):
        return []


def _ids(result):
    return [m.poi_id for m in result.markers]


class TestRecommend:
    """End-to-end requests against the bundled corpus."""

    def test_located_request(self, engine):
        result = asyncio.run(engine.recommend("Romantic dinner near Seven Mile Beach"))

        assert result.debug["mode"] == "semantic"
        assert result.debug["semantic_variants"] == len(result.intent.search_queries)
        assert result.markers
        assert result.viewport.center.lat == pytest.approx(19.335)
        assert result.viewport.zoom == 14
        assert result.top_recommendations
        assert result.top_recommendations[0].rank == 1
        assert all(0 <= r.match_score <= 100 for r in result.top_recommendations)

    def test_selection_invariants(self, engine):
        result = asyncio.run(engine.recommend("things to do near george town"))
        ids = _ids(result)
        cap = math.ceil(engine.config.max_total / 4)

        assert len(ids) == len(set(ids)) <= engine.config.max_total
        assert set(result.highlighted_ids) <= set(ids)
        assert len(result.highlighted_ids) <= engine.config.max_highlighted
        assert result.highlighted_ids + result.clustered_ids == ids
        assert max(Counter(m.category for m in result.markers).values()) <= cap
        assert result.viewport.highlight_ids == tuple(result.highlighted_ids)

    def test_unusable_places_never_appear(self, engine):
        for query in ("dinner in george town", "coffee", "restaurant"):
            result = asyncio.run(engine.recommend(query))
            assert not UNUSABLE & set(_ids(result))
            assert not UNUSABLE & {d.poi.id for d in result.discover_also or []}

    def test_hidden_categories_need_interest(self, engine):
        cold = asyncio.run(engine.recommend("bank in george town"))
        assert "fin-harbourside-private-bank" not in _ids(cold)

        context = ConversationContext(interest_scores={"financial_services": 0.6}, message_count=2)
        warm = asyncio.run(engine.recommend("bank in george town", context=context))
        assert "fin-harbourside-private-bank" in _ids(warm)

    def test_session_recent_place_is_kept(self, engine):
        context = ConversationContext(recent_place_ids=("act-crystal-caves",), message_count=1)
        result = asyncio.run(
            engine.recommend("romantic dinner near seven mile beach", context=context)
        )
        assert "act-crystal-caves" in _ids(result)

    def test_same_request_same_answer(self, engine):
        first = asyncio.run(engine.recommend("family beach day with snorkeling"))
        second = asyncio.run(engine.recommend("family beach day with snorkeling"))

        assert _ids(first) == _ids(second)
        assert first.highlighted_ids == second.highlighted_ids
        assert first.viewport == second.viewport

    def test_history_fills_in_follow_up(self, engine):
        history = [ChatTurn(role="user", content="hotels on seven mile beach")]
        result = asyncio.run(engine.recommend("which ones have a pool?", history=history))

        assert "hotel" in result.intent.categories
        assert result.intent.location.name == "Seven Mile Beach"
        assert result.intent.must_have_features == ["pool"]

    def test_without_reasoning(self, engine):
        result = asyncio.run(engine.recommend("spa", reasoning=False))
        assert result.top_recommendations is None
        assert result.discover_also is None


class TestFreshStart:
    def test_vague_first_message_shows_default_map(self, engine, lexicon):
        result = asyncio.run(engine.recommend("hello"))
        center, zoom = lexicon.home_view

        assert result.debug["mode"] == "default"
        assert result.viewport.center == center
        assert result.viewport.zoom == zoom
        assert result.markers
        assert {m.category for m in result.markers} <= set(lexicon.default_categories)
        assert max(Counter(m.category for m in result.markers).values()) <= 5

    def test_vague_message_mid_session_is_scored(self, engine):
        context = ConversationContext(interest_scores={"beach": 0.4}, message_count=1)
        result = asyncio.run(engine.recommend("hello", context=context))
        assert result.debug["mode"] != "default"


class TestDegradedMode:
    """Requests still succeed when the semantic collaborator misbehaves."""

    def test_failing_searcher(self, corpus, lexicon):
        engine = RecommendationEngine(corpus, lexicon=lexicon, searcher=FailingSearcher())
        result = asyncio.run(engine.recommend("beach near seven mile beach"))

        assert result.debug["mode"] == "degraded"
        assert result.markers
        assert result.stats.semantic_matches == 0

    def test_slow_searcher_times_out(self, corpus, lexicon):
        engine = RecommendationEngine(
            corpus,
            lexicon=lexicon,
            searcher=SlowSearcher(),
            config=EngineConfig(embedding_timeout_seconds=0.01),
        )
        result = asyncio.run(engine.recommend("beach near seven mile beach"))
        assert result.debug["mode"] == "degraded"
        assert result.markers

    def test_no_searcher(self, corpus, lexicon):
        engine = RecommendationEngine(corpus, lexicon=lexicon)
        result = asyncio.run(engine.recommend("dive sites"))
        assert result.debug["mode"] == "degraded"
        assert result.markers


def test_empty_corpus(lexicon):
    engine = RecommendationEngine([], lexicon=lexicon)
    result = asyncio.run(engine.recommend("beach"))

    assert result.markers == []
    assert result.viewport is None
    assert result.top_recommendations == []
    assert result.discover_also == []
    assert result.stats.total_candidates == 0


def test_refresh_keeps_searcher(engine, corpus):
    searcher = engine.searcher
    engine.refresh(corpus[:5])

    assert len(engine.corpus) == 5
    assert engine.searcher is searcher
    assert len(engine.place_index) == 5


def test_mentioned_place_ids(engine):
    assert engine.mentioned_place_ids("Dinner at Blue by Eric Ripert") == ["rest-blue-by-eric-ripert"]


def test_recommend_sync(engine):
    result = engine.recommend_sync("sunset cocktails in george town")
    assert result.intent.location.name == "George Town"
    assert result.markers


def test_nearby_restaurants_outrank_far_better_rated_ones(make_poi, lexicon):
    near = [
        make_poi(f"near-{i}", rating=rating, lat=19.335 + i * 0.0015)
        for i, rating in enumerate([4.9, 4.2, 3.6, 4.9, 4.9])
    ]
    # roughly 20 km east of Seven Mile Beach
    far = [make_poi(f"far-{i}", rating=5.0, lat=19.335, lng=-81.195) for i in range(5)]
    engine = RecommendationEngine(
        far + near, lexicon=lexicon, config=EngineConfig(per_category_cap=10)
    )

    result = asyncio.run(engine.recommend("luxury restaurant near seven mile beach"))
    ids = _ids(result)

    assert result.intent.price.level == "luxury"
    assert result.intent.location.radius_km == 3
    assert set(ids[:5]) == {p.id for p in near}
    assert all(poi_id.startswith("far-") for poi_id in ids[5:])


def test_vague_first_message_on_empty_corpus_has_no_viewport(lexicon):
    engine = RecommendationEngine([], lexicon=lexicon)
    result = asyncio.run(engine.recommend("hello there"))

    assert result.debug["mode"] == "default"
    assert result.markers == []
    assert result.viewport is None


def test_feature_only_first_message_is_scored(engine):
    result = asyncio.run(engine.recommend("somewhere with wifi and parking"))

    assert result.intent.must_have_features == ["parking", "wifi"]
    assert result.debug["mode"] != "default"


def test_total_candidates_counts_visible_places(engine):
    # 29 bundled records, 3 unusable, 2 in hidden categories
    for query in ("hello", "romantic dinner near seven mile beach"):
        result = asyncio.run(engine.recommend(query))
        assert result.stats.total_candidates == 24
