from __future__ import annotations

import logging

import httpx

from .constants import HTTP_LOGGER

MAX_LOGGED_BODY = 1000


def _truncate(text: str, limit: int = MAX_LOGGED_BODY) -> str:
    if len(text) > limit:
        return text[:limit] + "...<truncated>"
    return text


def build_event_hooks(*, debug: bool, logger: logging.Logger | None = None) -> dict:
    log = logger or HTTP_LOGGER

    async def log_request(request: httpx.Request) -> None:
        if not debug:
            return
        # Query strings can carry codes; log the path only.
        log.info("Provider request %s %s", request.method, request.url.copy_with(query=None))

    async def log_response(response: httpx.Response) -> None:
        request = response.request
        if debug:
            log.info(
                "Provider response %s %s -> %s",
                request.method,
                request.url.copy_with(query=None),
                response.status_code,
            )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            log.warning("Provider error body: %s", _truncate(text))

    return {"request": [log_request], "response": [log_response]}


def build_http_client(*, timeout: float, debug: bool = False) -> httpx.AsyncClient:
    """Client for identity-provider calls: explicit timeout, no retries."""
    return httpx.AsyncClient(
        timeout=timeout,
        event_hooks=build_event_hooks(debug=debug),
    )
