from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time

from auth.errors import InvalidToken
from auth.models import Identity, TokenPayload

DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60


def derive_key(secret: str) -> str:
    """Derive a stable signing key from the configured session secret."""
    return hashlib.sha256(f"gamefinder:{secret}".encode()).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def encode(payload: dict, key: str) -> str:
    data = json.dumps(payload, separators=(",", ":")).encode()
    sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    return f"{_b64encode(data)}.{_b64encode(sig)}"


def decode(token: str, key: str) -> dict:
    parts = token.split(".")
    if len(parts) != 2 or not all(parts):
        raise InvalidToken("Invalid token format.")
    data_b64, sig_b64 = parts
    try:
        data = _b64decode(data_b64)
        actual_sig = _b64decode(sig_b64)
    except (binascii.Error, ValueError) as error:
        raise InvalidToken("Token is not valid base64.") from error

    expected_sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        raise InvalidToken("Token signature verification failed.")

    try:
        payload = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise InvalidToken("Token payload is not JSON.") from error
    if not isinstance(payload, dict):
        raise InvalidToken("Token payload must be an object.")
    return payload


class TokenService:
    """Issues and verifies the signed session tokens stored in the auth cookie.

    Tokens are stateless: nothing is recorded server-side, so a token stays
    valid until its ``exp`` even after logout.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        clock=time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("Token lifetime must be positive.")
        self._key = derive_key(secret)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, identity: Identity) -> str:
        if not identity.id:
            raise ValueError("Cannot issue a token for an identity without an id.")
        now = int(self._clock())
        payload = {"sub": identity.id, "iat": now, "exp": now + self.ttl_seconds}
        if identity.email:
            payload["email"] = identity.email
        return encode(payload, self._key)

    def verify(self, token: str) -> TokenPayload:
        payload = decode(token, self._key)

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidToken("Token is missing its subject.")
        expires_at = payload.get("exp")
        if not isinstance(expires_at, int):
            raise InvalidToken("Token is missing its expiry.")
        if self._clock() >= expires_at:
            raise InvalidToken("Token has expired.")

        email = payload.get("email")
        issued_at = payload.get("iat")
        return TokenPayload(
            subject_id=subject,
            email=email if isinstance(email, str) else None,
            issued_at=issued_at if isinstance(issued_at, int) else 0,
            expires_at=expires_at,
        )
