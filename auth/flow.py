from __future__ import annotations

import enum
import logging
import secrets
import time
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.cors import CORSPolicy
from auth.errors import (
    AuthError,
    ExchangeFailed,
    MissingParameters,
    ProviderDenied,
    ProviderUnavailable,
    UnknownOrExpiredState,
)
from auth.models import Identity, PendingAuth
from auth.oidc_client import DEFAULT_SCOPE, generate_code_challenge, generate_code_verifier
from auth.session import CookieSettings, require_auth
from auth.signed_token import TokenService
from auth.state_store import DEFAULT_STATE_TTL_SECONDS, StateStore
from auth.urls import frontend_redirect_url, safe_redirect_path
from auth.user_directory import UserDirectory

LOGGER = logging.getLogger("gamefinder.auth")


class FlowStage(str, enum.Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    REDIRECTED = "redirected"
    CALLBACK_RECEIVED = "callback_received"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CompletedLogin:
    identity: Identity
    session_token: str
    redirect_path: str


class LoginFailed(Exception):
    """Wraps the error that ended a login together with how far it got."""

    def __init__(self, error: AuthError, stage: FlowStage) -> None:
        super().__init__(str(error))
        self.error = error
        self.stage = stage


class AuthFlow:
    def __init__(
        self,
        *,
        oidc_client,
        user_directory: UserDirectory,
        token_service: TokenService,
        state_store: StateStore,
        frontend_url: str,
        cookie: CookieSettings | None = None,
        cors: CORSPolicy | None = None,
        scope: str = DEFAULT_SCOPE,
        state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
    ) -> None:
        self.oidc_client = oidc_client
        self.user_directory = user_directory
        self.token_service = token_service
        self.state_store = state_store
        self.frontend_url = frontend_url.rstrip("/")
        self.cookie = CookieSettings() if cookie is None else cookie
        self.cors = CORSPolicy() if cors is None else cors
        self.scope = scope
        self.state_ttl_seconds = state_ttl_seconds

    # -- flow ------------------------------------------------------------------

    async def initiate(self, provider: str, redirect: str | None) -> str:
        """Start a login and return the provider URL to send the browser to."""
        handle = await self.oidc_client.discover(provider)

        state = secrets.token_urlsafe(32)
        code_verifier = generate_code_verifier()
        await self.state_store.put(
            state,
            PendingAuth(
                provider=provider,
                code_verifier=code_verifier,
                redirect_path=safe_redirect_path(redirect),
                created_at=time.time(),
            ),
            self.state_ttl_seconds,
        )

        return self.oidc_client.build_authorization_url(
            handle,
            scope=self.scope,
            code_challenge=generate_code_challenge(code_verifier),
            state=state,
            redirect_uri=handle.credentials.redirect_uri,
        )

    async def complete(
        self,
        provider: str,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> CompletedLogin:
        stage = FlowStage.CALLBACK_RECEIVED
        try:
            if error:
                if state:
                    await self._claim_state(provider, state)
                raise ProviderDenied(f"Provider returned error: {error}")
            if not code or not state:
                raise MissingParameters("Missing code or state.")

            pending = await self._claim_state(provider, state)
            if pending is None:
                raise UnknownOrExpiredState("Unknown or expired state.")

            handle = await self.oidc_client.discover(provider)
            token_set = await self.oidc_client.exchange_code(
                handle,
                code=code,
                code_verifier=pending.code_verifier,
                redirect_uri=handle.credentials.redirect_uri,
            )
            candidate = await self.oidc_client.fetch_identity(handle, token_set)
            identity = await self.user_directory.upsert(candidate)
            session_token = self.token_service.issue(identity)
        except AuthError as auth_error:
            raise LoginFailed(auth_error, stage) from auth_error

        LOGGER.info("Login via %s completed for user %s", provider, identity.id)
        return CompletedLogin(
            identity=identity,
            session_token=session_token,
            redirect_path=pending.redirect_path,
        )

    # -- routes ----------------------------------------------------------------

    def routes(self) -> list[Route]:
        # Fixed paths first so they are not captured as provider names.
        return [
            Route("/auth/logout", self._handle_logout, methods=["GET"]),
            Route("/auth/me", self.cors.wrap(require_auth(self._handle_me)), methods=["GET"]),
            self.cors.preflight_route("/auth/me"),
            Route("/auth/{provider}/callback", self._handle_callback, methods=["GET"]),
            Route("/auth/{provider}", self._handle_initiate, methods=["GET"]),
        ]

    # -- handlers --------------------------------------------------------------

    async def _handle_initiate(self, request: Request) -> Response:
        provider = request.path_params["provider"]
        try:
            authorization_url = await self.initiate(provider, request.query_params.get("redirect"))
        except AuthError as error:
            LOGGER.error(
                "Login via %s failed at stage %s -> %s: %s",
                provider,
                FlowStage.INITIATED.value,
                FlowStage.FAILED.value,
                error,
            )
            return self._error(request, error)
        except Exception:
            LOGGER.exception("Unexpected error while starting %s login", provider)
            return self._error(request, ProviderUnavailable())

        return RedirectResponse(url=authorization_url, status_code=302)

    async def _handle_callback(self, request: Request) -> Response:
        provider = request.path_params["provider"]
        try:
            login = await self.complete(
                provider,
                code=request.query_params.get("code"),
                state=request.query_params.get("state"),
                error=request.query_params.get("error"),
            )
        except LoginFailed as failure:
            LOGGER.warning(
                "Login via %s failed at stage %s -> %s: %s",
                provider,
                failure.stage.value,
                FlowStage.FAILED.value,
                failure.error,
            )
            return self._error(request, failure.error)
        except Exception as error:
            LOGGER.exception("Unexpected error during %s OAuth callback", provider)
            return self._error(request, ExchangeFailed(str(error)))

        response = RedirectResponse(
            url=frontend_redirect_url(self.frontend_url, login.redirect_path),
            status_code=302,
        )
        self.cookie.set_on(response, login.session_token)
        return response

    async def _handle_logout(self, request: Request) -> Response:
        del request
        response = RedirectResponse(url=self.frontend_url, status_code=302)
        self.cookie.clear_on(response)
        return response

    async def _handle_me(self, request: Request) -> Response:
        return JSONResponse(request.state.user.public_view())

    # -- helpers ---------------------------------------------------------------

    async def _claim_state(self, provider: str, state: str) -> PendingAuth | None:
        # A state issued for another provider is rejected without consuming it.
        pending = await self.state_store.get(state)
        if pending is not None and pending.provider != provider:
            return None
        return await self.state_store.pop(state)

    def _error(self, request: Request, error: AuthError) -> Response:
        return self.cors.json(request, error.payload(), status_code=error.status_code)
