from __future__ import annotations

import functools

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from auth.cors import CORSPolicy
from auth.flow import AuthFlow
from auth.oidc_client import OIDCClient, ProviderCredentials
from auth.session import SessionCookieMiddleware
from auth.signed_token import TokenService
from auth.state_store import FileStateStore, MemoryStateStore, StateStore
from auth.user_directory import MemoryUserDirectory, UserDirectory

from .constants import APP_VERSION
from .env import Settings
from .http import build_http_client


def build_oidc_client(settings: Settings) -> OIDCClient:
    return OIDCClient(
        {
            "google": ProviderCredentials(
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                redirect_uri=settings.google_redirect_uri,
            )
        },
        timeout=settings.http_timeout,
        client_factory=functools.partial(
            build_http_client, timeout=settings.http_timeout, debug=settings.debug
        ),
    )


def build_state_store(settings: Settings) -> StateStore:
    if settings.state_store_path:
        return FileStateStore(settings.state_store_path)
    return MemoryStateStore()


def health_route(settings: Settings, cors: CORSPolicy) -> Route:
    async def health(request: Request) -> Response:
        return cors.json(
            request,
            {
                "status": "ok",
                "version": APP_VERSION,
                "environment": settings.environment,
            },
        )

    return Route("/health", health, methods=["GET"])


def create_app(
    settings: Settings,
    *,
    oidc_client=None,
    user_directory: UserDirectory | None = None,
    state_store: StateStore | None = None,
    token_service: TokenService | None = None,
) -> Starlette:
    # Injected stores may be empty, and empty stores are falsy.
    if user_directory is None:
        user_directory = MemoryUserDirectory()
    if state_store is None:
        state_store = build_state_store(settings)
    if token_service is None:
        token_service = TokenService(
            settings.session_secret, ttl_seconds=settings.session_ttl_seconds
        )
    if oidc_client is None:
        oidc_client = build_oidc_client(settings)
    cookie = settings.cookie_settings()
    cors = CORSPolicy.for_origins(settings.cors_origins)

    flow = AuthFlow(
        oidc_client=oidc_client,
        user_directory=user_directory,
        token_service=token_service,
        state_store=state_store,
        frontend_url=settings.frontend_url,
        cookie=cookie,
        cors=cors,
    )

    routes = [
        health_route(settings, cors),
        cors.preflight_route("/health"),
        *flow.routes(),
    ]
    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                SessionCookieMiddleware,
                token_service=token_service,
                user_directory=user_directory,
                cookie=cookie,
            )
        ],
    )
    app.state.settings = settings
    app.state.auth_flow = flow
    return app
