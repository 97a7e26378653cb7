from __future__ import annotations

import logging
from contextvars import ContextVar
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .settings import settings

REQUEST_ID_HEADER = "X-Request-ID"

current_request_id: ContextVar[str] = ContextVar("current_request_id", default="")


def add_cors(app: FastAPI) -> None:
    """Browser access is opt-in through CORS_ALLOW_ORIGINS."""
    origins = settings.allow_origins
    if not origins:
        return
    # The API carries no cookies or auth, so credentials stay off even for "*".
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Echo or mint a request id and bind it, with the path, into structlog's context."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        id_token = current_request_id.set(request_id)
        log_tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id, path=request.url.path
        )
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.reset_contextvars(**log_tokens)
            current_request_id.reset(id_token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class StdlibRequestIdFilter(logging.Filter):
    """Recommender modules log through stdlib logging; stamp those records too."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id.get() or "-"  # type: ignore[attr-defined]
        return True


def add_request_context(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
    root = logging.getLogger()
    if not any(isinstance(f, StdlibRequestIdFilter) for f in root.filters):
        root.addFilter(StdlibRequestIdFilter())
