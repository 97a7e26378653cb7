from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from .api.routes import recommendations as recommendations_routes
from .health import health_checker, redact
from .logging_config import SERVICE_NAME, SERVICE_VERSION, configure_structlog, get_logger
from .metrics import PrometheusMiddleware, get_metrics
from .openai_async import close_async_client
from .settings import settings
from .utils import add_cors, add_request_context

API_PREFIX = "/v1"

logger = get_logger(__name__)


def init_sentry() -> None:
    if not settings.SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        release=settings.SENTRY_RELEASE or f"{SERVICE_NAME}@{SERVICE_VERSION}",
        integrations=[FastApiIntegration()],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    engine = recommendations_routes.ENGINE
    logger.info(
        "api_started",
        corpus_size=len(engine.corpus) if engine else 0,
        engine_error=repr(recommendations_routes.init_error) if engine is None else None,
    )
    yield
    await close_async_client()


async def health() -> JSONResponse:
    """Engine, embeddings and Sentry status; 503 unless everything is usable."""
    report = await health_checker.check_all()
    checks = report.get("checks", {})
    body = {
        "status": report["status"],
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": report.get("timestamp"),
        "checks": checks if settings.DEBUG else redact(checks),
    }
    return JSONResponse(content=body, status_code=200 if report["status"] == "healthy" else 503)


def metrics():
    try:
        return get_metrics()
    except Exception:  # pragma: no cover
        logger.exception("metrics_export_failed")
        raise HTTPException(status_code=503, detail="metrics unavailable")


def create_app() -> FastAPI:
    application = FastAPI(
        lifespan=lifespan,
        title="Isle Concierge API",
        version=SERVICE_VERSION,
        description="Conversational point-of-interest recommendations and map focus",
    )
    add_cors(application)
    add_request_context(application)
    application.add_middleware(PrometheusMiddleware)

    application.include_router(recommendations_routes.router, prefix=API_PREFIX)
    application.add_api_route("/health", health, methods=["GET"], tags=["ops"])
    application.add_api_route("/metrics", metrics, methods=["GET"], tags=["ops"])
    return application


# logging must be configured before the first logger is used
configure_structlog(json_logs=not settings.DEBUG)
init_sentry()

app = create_app()
