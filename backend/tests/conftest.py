import os
import sys
from pathlib import Path

import pytest
import sentry_sdk
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
os.environ["EMBEDDING_BACKEND"] = "hash"
os.environ.pop("OPENAI_API_KEY", None)
test_data_dir = ROOT / "artifacts" / "test-data"
test_data_dir.mkdir(parents=True, exist_ok=True)
os.environ["DATA_DIR"] = str(test_data_dir)


def _sync_seed_file(filename: str, fallback: str = "") -> None:
    src = ROOT / "backend" / "app" / "data" / filename
    dst = test_data_dir / filename
    if src.exists():
        dst.write_text(src.read_text(encoding="utf-8"), encoding="utf-8")
    elif fallback and not dst.exists():
        dst.write_text(fallback, encoding="utf-8")


_sync_seed_file("pois.json", '{"pois": []}\n')

from backend.app.main import app  # noqa: E402
from backend.app.recommender.embeddings import EmbeddingIndex, HashingEmbedder  # noqa: E402
from backend.app.recommender.engine import RecommendationEngine  # noqa: E402
from backend.app.recommender.geo import has_valid_coordinates  # noqa: E402
from backend.app.recommender.lexicon import bundled_lexicon  # noqa: E402
from backend.app.recommender.normalize import load_corpus  # noqa: E402
from backend.app.recommender.types import POI, Coordinates  # noqa: E402
from backend.app.settings import BUNDLED_DATA_DIR, settings  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    return TestClient(app, base_url="http://api.testserver")


@pytest.fixture(autouse=True)
def isolate_settings() -> None:
    settings.OPENAI_API_KEY = None
    settings.SENTRY_DSN = None
    settings.EMBEDDING_BACKEND = "hash"
    os.environ.pop("OPENAI_API_KEY", None)


@pytest.fixture(scope="session")
def lexicon():
    return bundled_lexicon()


@pytest.fixture(scope="session")
def corpus() -> list[POI]:
    return load_corpus(BUNDLED_DATA_DIR / "pois.json")


@pytest.fixture()
def engine(corpus, lexicon) -> RecommendationEngine:
    usable = [p for p in corpus if p.is_active and has_valid_coordinates(p.coordinates)]
    index = EmbeddingIndex.build(usable, HashingEmbedder())
    return RecommendationEngine(corpus, lexicon=lexicon, searcher=index)


@pytest.fixture()
def make_poi():
    """Factory for ad-hoc POIs; coordinates default to Seven Mile Beach."""

    def _make(poi_id: str, category: str = "restaurant", lat=19.335, lng=-81.385, **extra) -> POI:
        coords = None if lat is None or lng is None else Coordinates(lat=lat, lng=lng)
        extra.setdefault("name", poi_id.replace("-", " ").title())
        return POI(id=poi_id, category=category, coordinates=coords, **extra)

    return _make
