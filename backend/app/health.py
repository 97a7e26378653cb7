"""Health check module with dependency verification."""

from __future__ import annotations

import time
from typing import Any

from .settings import settings


def _is_configured(value: str | None) -> bool:
    """Return True when a config string is non-empty after trimming."""
    if value is None:
        return False
    return bool(value.strip())


class HealthChecker:
    """Reports on the recommendation engine and its optional collaborators."""

    def __init__(self) -> None:
        self._check_cache: dict[str, tuple[dict[str, Any], float]] = {}
        self._cache_ttl = 30.0  # Cache health checks for 30 seconds

    async def check_all(self) -> dict[str, Any]:
        checks = {
            "engine": self._check_engine(),
            "embeddings": self._check_embeddings(),
            "sentry": self._check_sentry() if _is_configured(settings.SENTRY_DSN) else {"status": "disabled"},
        }
        # the embeddings collaborator is optional; a missing one degrades ranking only
        all_ok = all(
            check.get("status") in {"ok", "disabled", "degraded"} for check in checks.values()
        )
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "checks": checks,
        }

    def _check_engine(self) -> dict[str, Any]:
        from .api.routes import recommendations

        engine = recommendations.ENGINE
        if engine is None:
            return {
                "status": "error",
                "error": str(recommendations.init_error),
                "error_type": type(recommendations.init_error).__name__,
            }
        return {
            "status": "ok",
            "corpus_size": len(engine.corpus),
            "indexed_names": len(engine.place_index),
            "weight_profile": engine.config.weights.name,
        }

    def _check_embeddings(self) -> dict[str, Any]:
        from .api.routes import recommendations

        engine = recommendations.ENGINE
        if engine is None or engine.searcher is None:
            return {"status": "degraded", "reason": "no semantic collaborator"}
        embedder = getattr(engine.searcher, "embedder", None)
        return {
            "status": "ok",
            "backend": getattr(embedder, "name", settings.EMBEDDING_BACKEND),
            "timeout_seconds": settings.EMBEDDING_TIMEOUT_SECONDS,
        }

    def _check_sentry(self) -> dict[str, Any]:
        """Check if Sentry is configured (doesn't actually test connectivity)."""
        cached = self._get_cached_check("sentry")
        if cached is not None:
            return cached
        dsn = settings.SENTRY_DSN or ""
        if "@" in dsn and "//" in dsn:
            result = {
                "status": "ok",
                "environment": settings.SENTRY_ENVIRONMENT,
                "release": settings.SENTRY_RELEASE or "unset",
            }
        else:
            result = {"status": "error", "error": "Invalid SENTRY_DSN format"}
        self._cache_check("sentry", result)
        return result

    def _get_cached_check(self, key: str) -> dict[str, Any] | None:
        if key not in self._check_cache:
            return None
        result, timestamp = self._check_cache[key]
        if time.time() - timestamp > self._cache_ttl:
            return None
        return result

    def _cache_check(self, key: str, result: dict[str, Any]) -> None:
        self._check_cache[key] = (result, time.time())


health_checker = HealthChecker()


PRIVATE_KEYS = frozenset({"error", "error_type", "traceback"})


def redact(value: Any) -> Any:
    """Drop exception text from a health payload before it leaves the process."""
    if isinstance(value, dict):
        return {key: redact(inner) for key, inner in value.items() if key not in PRIVATE_KEYS}
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value
