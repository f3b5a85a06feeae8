from __future__ import annotations

import functools
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

LOCAL_FRONTEND_ORIGINS = frozenset({"http://localhost:3000", "http://127.0.0.1:3000"})


@dataclass(frozen=True)
class CORSPolicy:
    """Which browser origins may call us with the session cookie attached.

    Only exact origin matches are answered; everyone else gets a response
    without any ``Access-Control-*`` headers and the browser blocks it.
    """

    origins: frozenset[str] = LOCAL_FRONTEND_ORIGINS
    methods: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
    allow_headers: tuple[str, ...] = ("Content-Type", "Authorization")

    @classmethod
    def for_origins(cls, origins) -> "CORSPolicy":
        return cls(origins=frozenset(origins)) if origins else cls()

    def headers_for(self, origin: str | None) -> dict[str, str]:
        if origin is None or origin not in self.origins:
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": ", ".join(self.methods),
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Vary": "Origin",
        }

    def apply(self, request: Request, response: Response) -> Response:
        response.headers.update(self.headers_for(request.headers.get("origin")))
        return response

    def json(self, request: Request, payload: dict, status_code: int = 200) -> Response:
        return self.apply(request, JSONResponse(payload, status_code=status_code))

    def wrap(self, handler):
        """Decorate an endpoint so every response it returns carries CORS headers."""

        @functools.wraps(handler)
        async def endpoint(request: Request) -> Response:
            return self.apply(request, await handler(request))

        return endpoint

    def preflight_route(self, path: str) -> Route:
        async def preflight(request: Request) -> Response:
            return self.apply(request, Response(status_code=204))

        return Route(path, preflight, methods=["OPTIONS"])
