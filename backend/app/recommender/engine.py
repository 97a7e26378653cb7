from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..logging_config import get_logger
from ..metrics import semantic_fallbacks_total, track_corpus, track_recommendation
from ..settings import EngineConfig, settings
from .context import ContextTracker
from .embeddings import SemanticSearcher, get_default_embedder, load_or_build_index
from .geo import has_valid_coordinates
from .intent import BASE_CONFIDENCE, IntentExtractor
from .lexicon import IntentLexicon, bundled_lexicon, load_lexicon
from .normalize import load_corpus
from .place_index import PlaceNameIndex
from .reasoning import RecommendationReasoner
from .scoring import CandidateScorer, filter_corpus
from .selection import DiversitySelector, Selection, build_markers, default_selection
from .types import (
    POI,
    ChatTurn,
    ConversationContext,
    Intent,
    ScoredCandidate,
    SelectionResult,
    SelectionStats,
)
from .viewport import compute_viewport, home_viewport

logger = get_logger(__name__)

INTEREST_MATCH_THRESHOLD = 0.3
GEOGRAPHIC_MATCH_THRESHOLD = 0.5


@dataclass(frozen=True)
class _Snapshot:
    corpus: tuple[POI, ...]
    usable: tuple[POI, ...]
    searcher: SemanticSearcher | None


class RecommendationEngine:
    """Runs one recommendation request end to end.

    The engine owns an immutable corpus snapshot, the lexicon, the semantic
    collaborator and the place-name index. ``refresh`` replaces the snapshot
    in a single assignment, so in-flight requests keep the one they started
    with.
    """

    def __init__(
        self,
        corpus: Sequence[POI],
        lexicon: IntentLexicon | None = None,
        searcher: SemanticSearcher | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.lexicon = lexicon or bundled_lexicon()
        self.config = config or EngineConfig()
        self.extractor = IntentExtractor(self.lexicon)
        self.scorer = CandidateScorer(self.config, self.lexicon)
        self.selector = DiversitySelector.from_config(self.config)
        self.reasoner = RecommendationReasoner(self.lexicon, self.config)
        self.context_tracker = ContextTracker(self.lexicon)
        self.place_index = PlaceNameIndex()
        self._snapshot = _Snapshot((), (), None)
        self.refresh(corpus, searcher)

    @classmethod
    def default(cls) -> RecommendationEngine:
        config = settings.engine_config
        lexicon = load_lexicon(settings.lexicon_path)
        corpus = load_corpus(settings.corpus_path)
        usable = [p for p in corpus if p.is_active and has_valid_coordinates(p.coordinates)]
        index = load_or_build_index(
            usable,
            path=settings.embedding_index_path,
            embedder=get_default_embedder(settings.EMBEDDING_BACKEND),
        )
        return cls(corpus, lexicon=lexicon, searcher=index, config=config)

    # ---------- lifecycle ----------

    def refresh(self, corpus: Sequence[POI], searcher: SemanticSearcher | None = None) -> None:
        """Swap in a new corpus snapshot; keeps the current searcher when none is given."""
        snapshot = tuple(corpus)
        usable = tuple(p for p in snapshot if p.is_active and has_valid_coordinates(p.coordinates))
        current = self._snapshot
        self.place_index.refresh(usable)
        self._snapshot = _Snapshot(
            corpus=snapshot,
            usable=usable,
            searcher=searcher if searcher is not None else current.searcher,
        )
        track_corpus(len(snapshot), len(usable))
        logger.info("corpus_refreshed", total=len(snapshot), usable=len(usable))

    @property
    def corpus(self) -> tuple[POI, ...]:
        return self._snapshot.corpus

    @property
    def searcher(self) -> SemanticSearcher | None:
        return self._snapshot.searcher

    def mentioned_place_ids(self, text: str) -> list[str]:
        return self.place_index.mentioned_ids(text)

    def extract_intent(self, query: str, history: Sequence[ChatTurn] | None = None) -> Intent:
        return self.extractor.extract(query, history)

    # ---------- pipeline ----------

    async def _semantic_scores(
        self, intent: Intent, searcher: SemanticSearcher | None
    ) -> list[Mapping[str, float]] | None:
        if searcher is None:
            semantic_fallbacks_total.labels(reason="no_searcher").inc()
            return None
        variants: list[Mapping[str, float]] = []
        for idx, text in enumerate(intent.search_queries):
            try:
                vector = await asyncio.wait_for(
                    searcher.embed_query(text), timeout=self.config.embedding_timeout_seconds
                )
                hits = searcher.search(vector, self.config.embedding_top_k)
            except Exception as exc:
                reason = "timeout" if isinstance(exc, asyncio.TimeoutError) else type(exc).__name__
                semantic_fallbacks_total.labels(reason=reason).inc()
                logger.warning(
                    "semantic_lookup_failed", variant=idx, reason=reason, error=str(exc)
                )
                return None
            variants.append(dict(hits))
        return variants

    def _is_fresh_start(self, intent: Intent, context: ConversationContext) -> bool:
        return (
            context.is_empty
            and intent.confidence <= BASE_CONFIDENCE
            and not intent.categories
            and intent.location is None
            and not intent.must_have_features
            and not intent.experience
            and intent.time_of_day is None
        )

    @staticmethod
    def _stats(
        visible: Sequence[POI],
        scored: Sequence[ScoredCandidate],
        context: ConversationContext,
    ) -> SelectionStats:
        interests = context.interest_scores
        return SelectionStats(
            total_candidates=len(visible),
            semantic_matches=sum(1 for c in scored if c.scores.semantic > 0),
            interest_matches=sum(
                1 for c in scored if interests.get(c.poi.category, 0.0) > INTEREST_MATCH_THRESHOLD
            ),
            geographic_matches=sum(
                1 for c in scored if c.scores.geographic > GEOGRAPHIC_MATCH_THRESHOLD
            ),
        )

    def _result(
        self,
        intent: Intent,
        selection: Selection,
        scored: Sequence[ScoredCandidate],
        context: ConversationContext,
        visible: Sequence[POI],
        reasoning: bool,
        fresh_start: bool,
    ) -> SelectionResult:
        if fresh_start:
            center, zoom = self.lexicon.home_view
            viewport = home_viewport(center, zoom) if selection.candidates else None
        else:
            viewport = compute_viewport(
                selection.candidates,
                location=intent.location,
                padding=self.config.viewport_padding,
                highlight_ids=selection.highlighted_ids,
            )
        result = SelectionResult(
            markers=build_markers(selection),
            highlighted_ids=list(selection.highlighted_ids),
            clustered_ids=list(selection.clustered_ids),
            viewport=viewport,
            stats=self._stats(visible, scored, context),
            intent=intent,
        )
        if reasoning:
            result.top_recommendations = self.reasoner.rank(intent, selection.candidates)
            result.discover_also = self.reasoner.discover(intent, visible, selection.ids)
        return result

    async def recommend(
        self,
        query: str,
        history: Sequence[ChatTurn] | None = None,
        context: ConversationContext | None = None,
        reasoning: bool = True,
    ) -> SelectionResult:
        started = time.perf_counter()
        snapshot = self._snapshot
        context = context or ConversationContext()
        intent = self.extractor.extract(query, history)

        visible = filter_corpus(
            snapshot.usable,
            context,
            self.lexicon.hidden_categories,
            self.config.hidden_interest_threshold,
        )
        fresh_start = self._is_fresh_start(intent, context)
        semantic: list[Mapping[str, float]] | None = None
        if fresh_start:
            selection = default_selection(visible, self.lexicon.default_categories, self.config)
            scored: Sequence[ScoredCandidate] = selection.candidates
            mode = "default"
        else:
            semantic = await self._semantic_scores(intent, snapshot.searcher)
            scored = self.scorer.score(intent, visible, context, semantic)
            selection = self.selector.select(scored)
            mode = "semantic" if semantic else "degraded"

        result = self._result(
            intent, selection, scored, context, visible, reasoning, fresh_start
        )
        elapsed = time.perf_counter() - started
        result.debug = {
            "mode": mode,
            "weight_profile": self.config.weights.name,
            "search_queries": list(intent.search_queries),
            "semantic_variants": len(semantic or []),
            "elapsed_ms": round(elapsed * 1000, 2),
        }
        track_recommendation(mode, elapsed, len(scored))
        logger.info(
            "recommendation_served",
            mode=mode,
            primary_intent=intent.primary_intent,
            confidence=intent.confidence,
            candidates=len(scored),
            selected=len(result.markers),
        )
        return result

    def recommend_sync(
        self,
        query: str,
        history: Sequence[ChatTurn] | None = None,
        context: ConversationContext | None = None,
        reasoning: bool = True,
    ) -> SelectionResult:
        return asyncio.run(self.recommend(query, history, context, reasoning))
