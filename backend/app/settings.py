from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"
BUNDLED_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    DEBUG: bool = False

    # CORS allow origins (comma-separated). Default empty (no cross-origin).
    CORS_ALLOW_ORIGINS: str = ""

    # persistence directory (defaults to ~/.isle-concierge-data)
    DATA_DIR: Path | None = None
    # corpus snapshot and lexicon; blank means "use the bundled copy"
    CORPUS_PATH: Path | None = None
    LEXICON_PATH: Path | None = None

    # Recommendation engine
    RECOMMENDER_WEIGHT_PROFILE: str = "conversational"
    # optional override, e.g. "semantic=0.4,geographic=0.25"
    RECOMMENDER_WEIGHTS: str = ""
    RECOMMENDER_MIN_TOTAL_SCORE: float = 0.4
    RECOMMENDER_MAX_TOTAL: int = 35
    RECOMMENDER_MAX_HIGHLIGHTED: int = 8
    RECOMMENDER_PER_CATEGORY_CAP: int | None = None
    RECOMMENDER_FOR_REASONING: int = 25
    RECOMMENDER_FINAL_RECOMMENDATIONS: int = 8
    RECOMMENDER_DISCOVERY_SUGGESTIONS: int = 4
    RECOMMENDER_HIDDEN_INTEREST_THRESHOLD: float = 0.2
    RECOMMENDER_SESSION_BOOST: float = 0.5
    RECOMMENDER_RECENCY_PENALTY: float = 0.1
    RECOMMENDER_DIVERSITY_WEIGHT: float = 0.15
    RECOMMENDER_VIEWPORT_PADDING: float = 0.01

    # Embedding collaborator
    EMBEDDING_BACKEND: Literal["hash", "openai"] = "hash"
    EMBEDDING_TIMEOUT_SECONDS: float = 3.0
    EMBEDDING_TOP_K: int = 80
    CONCIERGE_EMBED_MODEL: str = "text-embedding-3-small"
    OPENAI_API_KEY: str | None = None
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 15.0
    OPENAI_CONNECT_TIMEOUT_SECONDS: float = 5.0

    # Observability
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2

    @property
    def allow_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if s == "*":
            return ["*"]
        if s == "":
            return []
        return [part.strip() for part in s.split(",") if part.strip()]

    @property
    def data_dir(self) -> Path:
        # Pydantic treats an empty string in `.env` as Path('.') which would point to the
        # repository root. Blank values count as "unset" and fall back to the home directory.
        def _materialize(path: Path) -> Path:
            path.mkdir(parents=True, exist_ok=True)
            return path

        raw_env = os.getenv("DATA_DIR")
        if raw_env is not None:
            trimmed = raw_env.strip()
            if trimmed:
                return _materialize(Path(trimmed).expanduser().resolve())
            return _materialize(Path.home() / ".isle-concierge-data")

        if self.DATA_DIR is not None:
            candidate = Path(self.DATA_DIR).expanduser()
            candidate_str = str(candidate).strip()
            if candidate_str and candidate_str not in {".", "./", ".\\"}:
                return _materialize(candidate.resolve())
        return _materialize(Path.home() / ".isle-concierge-data")

    @property
    def corpus_path(self) -> Path:
        if self.CORPUS_PATH and str(self.CORPUS_PATH).strip() not in {"", "."}:
            return Path(self.CORPUS_PATH).expanduser()
        synced = self.data_dir / "pois.json"
        if synced.exists():
            return synced
        return BUNDLED_DATA_DIR / "pois.json"

    @property
    def lexicon_path(self) -> Path:
        if self.LEXICON_PATH and str(self.LEXICON_PATH).strip() not in {"", "."}:
            return Path(self.LEXICON_PATH).expanduser()
        return BUNDLED_DATA_DIR / "intent_lexicon.json"

    @property
    def embedding_index_path(self) -> Path:
        return self.data_dir / "poi_embeddings.json"

    @property
    def weight_profile(self) -> WeightProfile:
        base = WeightProfile.named(self.RECOMMENDER_WEIGHT_PROFILE)
        if not self.RECOMMENDER_WEIGHTS.strip():
            return base
        return WeightProfile.from_string(self.RECOMMENDER_WEIGHTS, base=base)

    @property
    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            weights=self.weight_profile,
            min_total_score=self.RECOMMENDER_MIN_TOTAL_SCORE,
            max_total=self.RECOMMENDER_MAX_TOTAL,
            max_highlighted=self.RECOMMENDER_MAX_HIGHLIGHTED,
            per_category_cap=self.RECOMMENDER_PER_CATEGORY_CAP,
            for_reasoning=self.RECOMMENDER_FOR_REASONING,
            final_recommendations=self.RECOMMENDER_FINAL_RECOMMENDATIONS,
            discovery_suggestions=self.RECOMMENDER_DISCOVERY_SUGGESTIONS,
            hidden_interest_threshold=self.RECOMMENDER_HIDDEN_INTEREST_THRESHOLD,
            session_boost=self.RECOMMENDER_SESSION_BOOST,
            recency_penalty=self.RECOMMENDER_RECENCY_PENALTY,
            diversity_weight=self.RECOMMENDER_DIVERSITY_WEIGHT,
            viewport_padding=self.RECOMMENDER_VIEWPORT_PADDING,
            embedding_timeout_seconds=self.EMBEDDING_TIMEOUT_SECONDS,
            embedding_top_k=self.EMBEDDING_TOP_K,
        )


@dataclass(frozen=True, slots=True)
class WeightProfile:
    """Per-axis weights for the candidate scorer.

    Totals are divided by the sum of the active weights, so a profile does not
    need to sum to exactly 1.0.
    """

    name: str = "conversational"
    semantic: float = 0.35
    quality: float = 0.15
    feature: float = 0.20
    geographic: float = 0.20
    diversity: float = 0.05
    freshness: float = 0.05

    @classmethod
    def named(cls, name: str) -> WeightProfile:
        key = (name or "").strip().lower()
        try:
            return WEIGHT_PROFILES[key]
        except KeyError:
            known = ", ".join(sorted(WEIGHT_PROFILES))
            raise ValueError(f"Unknown weight profile {name!r} (known: {known})") from None

    @classmethod
    def from_string(cls, payload: str | None, base: WeightProfile | None = None) -> WeightProfile:
        base = base or cls()
        if not payload:
            return base
        axes = {f.name for f in fields(cls)} - {"name"}
        mapping: dict[str, float] = {}
        for part in payload.split(","):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            key = key.strip().lower()
            if key not in axes:
                continue
            try:
                mapping[key] = max(0.0, float(value.strip()))
            except ValueError:
                continue
        if not mapping:
            return base
        return replace(base, name=f"{base.name}+custom", **mapping)

    def as_dict(self) -> dict[str, float]:
        return {
            "semantic": self.semantic,
            "quality": self.quality,
            "feature": self.feature,
            "geographic": self.geographic,
            "diversity": self.diversity,
            "freshness": self.freshness,
        }


WEIGHT_PROFILES: dict[str, WeightProfile] = {
    # canonical: conversational turns
    "conversational": WeightProfile(),
    # live marker refresh leans harder on embeddings
    "live_refresh": WeightProfile(
        name="live_refresh",
        semantic=0.50,
        quality=0.10,
        feature=0.20,
        geographic=0.15,
        diversity=0.05,
        freshness=0.05,
    ),
}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    weights: WeightProfile = WeightProfile()
    min_total_score: float = 0.4
    max_total: int = 35
    max_highlighted: int = 8
    per_category_cap: int | None = None
    for_reasoning: int = 25
    final_recommendations: int = 8
    discovery_suggestions: int = 4
    hidden_interest_threshold: float = 0.2
    session_boost: float = 0.5
    recency_penalty: float = 0.1
    diversity_weight: float = 0.15
    interest_bonus: float = 0.1
    viewport_padding: float = 0.01
    embedding_timeout_seconds: float = 3.0
    embedding_top_k: int = 80


settings = Settings()
