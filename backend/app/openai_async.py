from __future__ import annotations

import asyncio
from typing import Any

import httpx

from .settings import settings

# One client per running event loop; `asyncio.run` in the CLI creates a new
# loop per call and an AsyncClient cannot outlive the loop it was opened on.
_clients: dict[int, tuple[asyncio.AbstractEventLoop, httpx.AsyncClient]] = {}


class OpenAIUnavailable(RuntimeError):
    pass


def _headers() -> dict[str, str]:
    if not settings.OPENAI_API_KEY:
        raise OpenAIUnavailable("OPENAI_API_KEY not configured")
    return {
        "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
        "Content-Type": "application/json",
    }


def _get_client() -> httpx.AsyncClient:
    loop = asyncio.get_running_loop()
    entry = _clients.get(id(loop))
    if entry is not None and entry[0] is loop and not entry[1].is_closed:
        return entry[1]
    # drop clients whose loops are gone
    for key, (other, _client) in list(_clients.items()):
        if other.is_closed():
            _clients.pop(key, None)
    timeout = httpx.Timeout(
        settings.OPENAI_TIMEOUT_SECONDS,
        connect=settings.OPENAI_CONNECT_TIMEOUT_SECONDS,
    )
    base_url = settings.OPENAI_API_BASE.rstrip("/") or "https://api.openai.com/v1"
    client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
    _clients[id(loop)] = (loop, client)
    return client


async def post_json(
    path: str, payload: dict[str, Any], *, timeout: float | None = None
) -> dict[str, Any]:
    headers = _headers()
    client = _get_client()
    try:
        response = await client.post(path, json=payload, headers=headers, timeout=timeout)
    except httpx.HTTPError as exc:
        raise OpenAIUnavailable(f"Request failed: {exc}") from exc
    if response.status_code >= 400:
        raise OpenAIUnavailable(f"OpenAI error {response.status_code}: {response.text[:200]}")
    try:
        return response.json()
    except ValueError as exc:
        raise OpenAIUnavailable("Invalid JSON from OpenAI") from exc


async def close_async_client() -> None:
    entry = _clients.pop(id(asyncio.get_running_loop()), None)
    if entry is not None:
        await entry[1].aclose()
