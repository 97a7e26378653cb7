from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import httpx
import numpy as np

from ..openai_async import OpenAIUnavailable, post_json
from ..settings import settings
from .types import POI

logger = logging.getLogger(__name__)


class EmbeddingUnavailable(RuntimeError):
    pass


class SemanticSearcher(Protocol):
    """Black-box similarity collaborator consumed by the engine."""

    async def embed_query(self, text: str) -> np.ndarray: ...

    def search(self, vector: np.ndarray, k: int) -> list[tuple[str, float]]: ...


class EmbeddingBackend:
    name: str = "base"
    dimension: int = 0

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        raise NotImplementedError

    async def aembed(self, text: str) -> np.ndarray:
        return self.embed_batch([text])[0]


class HashingEmbedder(EmbeddingBackend):
    """Lightweight, dependency-free hashing trick for small corpora."""

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.name = f"hash-{dimension}"

    def _embed(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dimension, dtype=np.float32)
        for tok in re.findall(r"[a-z0-9]+", text.lower()):
            h = int(hashlib.sha1(tok.encode("utf-8")).hexdigest(), 16)
            vec[h % self.dimension] += 1.0
        norm = float(np.linalg.norm(vec))
        return vec / norm if norm else vec

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.vstack([self._embed(t or "") for t in texts])


class OpenAIEmbedder(EmbeddingBackend):
    """OpenAI embeddings over plain HTTP; requires OPENAI_API_KEY."""

    def __init__(self, model: str | None = None) -> None:
        if not settings.OPENAI_API_KEY:
            raise EmbeddingUnavailable("OPENAI_API_KEY not set; cannot use OpenAIEmbedder")
        self.model = model or settings.CONCIERGE_EMBED_MODEL
        # dimension is model dependent; leave as 0 to avoid stale numbers
        self.dimension = 0
        self.name = self.model

    @staticmethod
    def _vectors(response: dict[str, Any]) -> np.ndarray:
        try:
            ordered = sorted(response["data"], key=lambda d: d["index"])
            return np.array([item["embedding"] for item in ordered], dtype=np.float32)
        except (KeyError, TypeError, ValueError) as exc:
            raise EmbeddingUnavailable("Malformed embeddings response") from exc

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        chunks: list[np.ndarray] = []
        timeout = httpx.Timeout(
            settings.OPENAI_TIMEOUT_SECONDS, connect=settings.OPENAI_CONNECT_TIMEOUT_SECONDS
        )
        headers = {
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        base_url = settings.OPENAI_API_BASE.rstrip("/")
        with httpx.Client(base_url=base_url, timeout=timeout) as client:
            for start in range(0, len(texts), 64):
                batch = [t[:2000] for t in texts[start : start + 64]]
                try:
                    response = client.post(
                        "/embeddings",
                        json={"model": self.model, "input": batch},
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    raise EmbeddingUnavailable(f"Embedding batch failed: {exc}") from exc
                chunks.append(self._vectors(response.json()))
        if not chunks:
            return np.zeros((0, 0), dtype=np.float32)
        return np.vstack(chunks)

    async def aembed(self, text: str) -> np.ndarray:
        try:
            response = await post_json(
                "/embeddings",
                {"model": self.model, "input": [text[:2000]]},
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )
        except OpenAIUnavailable as exc:
            raise EmbeddingUnavailable("Embedding call failed") from exc
        return self._vectors(response)[0]


def get_default_embedder(backend: str | None = None) -> EmbeddingBackend:
    choice = (backend or settings.EMBEDDING_BACKEND).lower()
    if choice == "openai":
        try:
            return OpenAIEmbedder()
        except EmbeddingUnavailable as exc:
            logger.warning("OpenAI embedder unavailable, falling back to hashing: %s", exc)
    return HashingEmbedder()


def poi_document(poi: POI) -> str:
    pieces = [
        poi.name,
        poi.category.replace("_", " "),
        poi.subcategory or "",
        poi.short_description,
        poi.description,
        " ".join(poi.highlights),
        " ".join(poi.tags),
        " ".join(poi.keywords),
        poi.district or "",
        poi.island or "",
    ]
    return " ".join(p for p in pieces if p)


def corpus_digest(pois: Sequence[POI]) -> str:
    h = hashlib.sha256()
    for poi in pois:
        h.update(poi.id.encode("utf-8"))
        h.update(poi_document(poi).encode("utf-8"))
    return h.hexdigest()


class EmbeddingIndex:
    """In-memory cosine index over POI documents.

    Rows are L2-normalised at build time so a search is one matrix product.
    """

    def __init__(
        self,
        ids: list[str],
        matrix: np.ndarray,
        embedder: EmbeddingBackend,
        meta: dict[str, Any] | None = None,
    ) -> None:
        self.ids = ids
        self.embedder = embedder
        self.meta = meta or {}
        if matrix.size:
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            matrix = matrix / norms
        self.matrix = matrix.astype(np.float32, copy=False)

    def __len__(self) -> int:
        return len(self.ids)

    @classmethod
    def build(cls, pois: Sequence[POI], embedder: EmbeddingBackend | None = None) -> EmbeddingIndex:
        embedder = embedder or get_default_embedder()
        docs = [poi_document(p) for p in pois]
        matrix = embedder.embed_batch(docs) if docs else np.zeros((0, 0), dtype=np.float32)
        meta = {
            "version": 1,
            "embedding_backend": embedder.name,
            "dimension": int(matrix.shape[1]) if matrix.ndim == 2 and len(docs) else 0,
            "count": len(docs),
            "digest": corpus_digest(pois),
        }
        logger.info("Built embedding index over %d POIs (%s)", len(docs), embedder.name)
        return cls([p.id for p in pois], matrix, embedder, meta)

    async def embed_query(self, text: str) -> np.ndarray:
        return await self.embedder.aembed(text)

    def search(self, vector: np.ndarray, k: int) -> list[tuple[str, float]]:
        if not self.ids or k <= 0:
            return []
        query = np.asarray(vector, dtype=np.float32).reshape(-1)
        if query.shape[0] != self.matrix.shape[1]:
            raise EmbeddingUnavailable(
                f"Query dimension {query.shape[0]} does not match index dimension {self.matrix.shape[1]}"
            )
        norm = float(np.linalg.norm(query))
        if norm == 0:
            return []
        sims = np.clip(self.matrix @ (query / norm), 0.0, 1.0)
        k = min(k, len(self.ids))
        # stable sort keeps corpus order among equal similarities
        order = np.argsort(-sims, kind="stable")[:k]
        return [(self.ids[i], float(sims[i])) for i in order]

    def save(self, path: Path) -> None:
        payload = {"meta": self.meta, "ids": self.ids, "vectors": self.matrix.tolist()}
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
        logger.info("Saved embedding index to %s", path)

    @classmethod
    def load(cls, path: Path, embedder: EmbeddingBackend | None = None) -> EmbeddingIndex:
        payload = json.loads(path.read_text(encoding="utf-8"))
        embedder = embedder or get_default_embedder()
        matrix = np.array(payload.get("vectors") or [], dtype=np.float32)
        return cls(list(payload.get("ids") or []), matrix, embedder, payload.get("meta") or {})


def load_or_build_index(
    pois: Sequence[POI], path: Path | None = None, embedder: EmbeddingBackend | None = None
) -> EmbeddingIndex:
    embedder = embedder or get_default_embedder()
    if path is not None and path.exists():
        try:
            index = EmbeddingIndex.load(path, embedder=embedder)
            if index.meta.get("embedding_backend") != embedder.name:
                raise ValueError("embedder mismatch")
            if index.meta.get("digest") != corpus_digest(pois):
                raise ValueError("corpus changed")
            return index
        except (OSError, ValueError) as exc:
            logger.warning("Embedding index at %s unusable (%s), rebuilding.", path, exc)
    index = EmbeddingIndex.build(pois, embedder=embedder)
    if path is not None:
        try:
            index.save(path)
        except OSError:
            logger.exception("Failed to save embedding index; continuing with in-memory copy.")
    return index
