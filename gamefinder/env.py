from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from auth.session import CookieSettings

from .constants import (
    DEFAULT_CORS_ORIGINS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SESSION_SECRET,
    DEVELOPMENT,
    LOGGER,
    PRODUCTION,
)

_DURATION_RE = re.compile(r"^(\d+)\s*([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv(raw: str) -> frozenset[str]:
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def parse_duration(key: str, raw: str) -> int:
    """Parse ``30``, ``90s``, ``15m``, ``12h`` or ``1d`` into seconds."""
    match = _DURATION_RE.match(raw.strip().lower())
    if match is None:
        raise RuntimeError(f"{key} must be a duration such as 3600, 30m, 12h or 1d.")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise RuntimeError(f"{key} must be greater than zero.")
    return seconds


def _get_env(environ, key: str, default: str = "") -> str:
    return environ.get(key, "").strip() or default


def _get_env_int(environ, key: str, default: int) -> int:
    raw = _get_env(environ, key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(environ, key: str, default: float) -> float:
    raw = _get_env(environ, key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def _cookie_domain(environ, development: bool) -> str | None:
    # An explicitly empty COOKIE_DOMAIN means host-only cookies.
    raw = environ.get("COOKIE_DOMAIN")
    if raw is None:
        raw = "localhost" if development else ""
    return raw.strip() or None


@dataclass(frozen=True)
class Settings:
    environment: str
    host: str
    port: int
    base_url: str
    frontend_url: str
    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str
    session_secret: str
    session_ttl_seconds: int
    cookie_domain: str | None
    cookie_max_age_seconds: int
    cors_origins: frozenset[str]
    state_store_path: str | None
    http_timeout: float
    debug: bool

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def cookie_settings(self) -> CookieSettings:
        return CookieSettings(
            max_age=self.cookie_max_age_seconds,
            secure=self.is_production,
            samesite="none" if self.is_production else "lax",
            domain=self.cookie_domain,
            path="/",
        )


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def load_settings(environ=None) -> Settings:
    environ = os.environ if environ is None else environ
    environment = _get_env(environ, "APP_ENV", DEVELOPMENT).lower()
    development = environment != PRODUCTION

    base_url = _get_env(
        environ,
        "BASE_URL",
        f"http://localhost:{DEFAULT_PORT}" if development else "https://api.gamefinder.org",
    ).rstrip("/")
    frontend_url = _get_env(
        environ,
        "FRONTEND_URL",
        "http://localhost:3000" if development else "https://www.gamefinder.org",
    ).rstrip("/")

    return Settings(
        environment=environment,
        host=_get_env(environ, "HOST", DEFAULT_HOST),
        port=_get_env_int(environ, "PORT", DEFAULT_PORT),
        base_url=base_url,
        frontend_url=frontend_url,
        google_client_id=_get_env(environ, "GOOGLE_CLIENT_ID"),
        google_client_secret=_get_env(environ, "GOOGLE_CLIENT_SECRET"),
        google_redirect_uri=_get_env(
            environ, "GOOGLE_REDIRECT_URI", f"{base_url}/auth/google/callback"
        ),
        session_secret=_get_env(environ, "SESSION_SECRET", DEFAULT_SESSION_SECRET),
        session_ttl_seconds=parse_duration("SESSION_TTL", _get_env(environ, "SESSION_TTL", "1d")),
        cookie_domain=_cookie_domain(environ, development),
        cookie_max_age_seconds=parse_duration(
            "COOKIE_MAX_AGE", _get_env(environ, "COOKIE_MAX_AGE", "24h")
        ),
        cors_origins=parse_csv(_get_env(environ, "CORS_ORIGINS", DEFAULT_CORS_ORIGINS)),
        state_store_path=_get_env(environ, "STATE_STORE_PATH") or None,
        http_timeout=_get_env_float(environ, "HTTP_TIMEOUT", 10.0),
        debug=is_truthy(environ.get("GAMEFINDER_DEBUG", "1")),
    )


def validate_env(settings: Settings) -> None:
    for key, url in (("BASE_URL", settings.base_url), ("FRONTEND_URL", settings.frontend_url)):
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise RuntimeError(f"{key} must be an absolute http(s) URL.")

    if settings.is_production and settings.session_secret == DEFAULT_SESSION_SECRET:
        raise RuntimeError("SESSION_SECRET must be set in production.")

    if not settings.google_client_id or not settings.google_client_secret:
        LOGGER.warning(
            "Google OAuth credentials not configured. Authentication will not work properly."
        )


def setup_logging(settings: Settings) -> bool:
    if settings.debug:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return settings.debug
