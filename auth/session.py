from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from auth.errors import AuthorizationRequired, InvalidToken
from auth.signed_token import TokenService
from auth.user_directory import UserDirectory

LOGGER = logging.getLogger("gamefinder.auth")

SESSION_COOKIE_NAME = "access_token"


@dataclass(frozen=True)
class CookieSettings:
    name: str = SESSION_COOKIE_NAME
    max_age: int = 24 * 60 * 60
    secure: bool = False
    samesite: str = "lax"
    domain: str | None = None
    path: str = "/"

    def set_on(self, response: Response, value: str) -> None:
        response.set_cookie(
            self.name,
            value,
            max_age=self.max_age,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    def clear_on(self, response: Response) -> None:
        response.delete_cookie(
            self.name,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    def is_set_by(self, response: Response) -> bool:
        prefix = f"{self.name}="
        return any(
            header.startswith(prefix) for header in response.headers.getlist("set-cookie")
        )


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """Resolve the caller's identity from the session cookie.

    Never rejects a request. A cookie that fails verification is deleted on
    the way out and the request proceeds as anonymous; route guards decide
    what anonymous callers may see.
    """

    def __init__(
        self,
        app,
        *,
        token_service: TokenService,
        user_directory: UserDirectory,
        cookie: CookieSettings,
    ) -> None:
        super().__init__(app)
        self.token_service = token_service
        self.user_directory = user_directory
        self.cookie = cookie

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.user = None
        request.state.is_authenticated = False

        discard_cookie = False
        token = request.cookies.get(self.cookie.name)
        if token:
            try:
                payload = self.token_service.verify(token)
            except InvalidToken as error:
                LOGGER.debug("Discarding session cookie: %s", error)
                discard_cookie = True
            else:
                user = await self.user_directory.find_by_id(payload.subject_id)
                if user is not None:
                    request.state.user = user
                    request.state.is_authenticated = True

        response = await call_next(request)
        # Don't clobber a fresh session issued by this very request.
        if discard_cookie and not self.cookie.is_set_by(response):
            self.cookie.clear_on(response)
        return response


def is_authenticated(request: Request) -> bool:
    return bool(
        getattr(request.state, "is_authenticated", False)
        and getattr(request.state, "user", None) is not None
    )


def require_auth(handler):
    @functools.wraps(handler)
    async def guarded(request: Request) -> Response:
        if not is_authenticated(request):
            error = AuthorizationRequired()
            return JSONResponse(error.payload(), status_code=error.status_code)
        return await handler(request)

    return guarded
