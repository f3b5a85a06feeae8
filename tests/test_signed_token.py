import base64
import json

import pytest

from auth import signed_token
from auth.errors import InvalidToken
from auth.models import Identity
from auth.signed_token import TokenService
from tests.auth_helpers import tamper_signature


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _identity(user_id: str = "user-1", email: str = "ada@example.com") -> Identity:
    return Identity(
        id=user_id,
        email=email,
        name="Ada",
        picture=None,
        provider="google",
        provider_user_id="sub-1",
    )


def test_verify_issue_round_trip_subject() -> None:
    service = TokenService("secret")

    payload = service.verify(service.issue(_identity("user-42")))

    assert payload.subject_id == "user-42"
    assert payload.email == "ada@example.com"


def test_default_lifetime_is_one_day() -> None:
    clock = _Clock(1_700_000_000.0)
    service = TokenService("secret", clock=clock)

    payload = service.verify(service.issue(_identity()))

    assert payload.issued_at == 1_700_000_000
    assert payload.expires_at == 1_700_000_000 + 86400


def test_email_is_optional() -> None:
    service = TokenService("secret")

    token = service.issue(_identity(email=""))

    assert service.verify(token).email is None


def test_issue_requires_identity_id() -> None:
    with pytest.raises(ValueError):
        TokenService("secret").issue(_identity(user_id=""))


def test_expired_token_rejected() -> None:
    clock = _Clock(1000.0)
    service = TokenService("secret", ttl_seconds=10, clock=clock)
    token = service.issue(_identity())

    clock.now = 1010.0

    with pytest.raises(InvalidToken, match="expired"):
        service.verify(token)


def test_other_secret_rejected() -> None:
    token = TokenService("secret-a").issue(_identity())

    with pytest.raises(InvalidToken):
        TokenService("secret-b").verify(token)


@pytest.mark.parametrize("position", range(0, 32, 5))
def test_any_flipped_signature_byte_rejected(position: int) -> None:
    service = TokenService("secret")
    token = service.issue(_identity())

    with pytest.raises(InvalidToken):
        service.verify(tamper_signature(token, position))


def test_modified_payload_rejected() -> None:
    service = TokenService("secret")
    data_b64, sig_b64 = service.issue(_identity("user-1")).split(".")
    forged = json.dumps({"sub": "admin", "iat": 0, "exp": 9_999_999_999}).encode()
    forged_b64 = base64.urlsafe_b64encode(forged).rstrip(b"=").decode()

    with pytest.raises(InvalidToken):
        service.verify(f"{forged_b64}.{sig_b64}")


@pytest.mark.parametrize("token", ["", "abc", "a.b.c", ".sig", "data.", "!!!.???"])
def test_malformed_tokens_rejected(token: str) -> None:
    with pytest.raises(InvalidToken):
        TokenService("secret").verify(token)


def test_missing_subject_rejected() -> None:
    service = TokenService("secret")
    key = signed_token.derive_key("secret")
    token = signed_token.encode({"exp": 9_999_999_999}, key)

    with pytest.raises(InvalidToken, match="subject"):
        service.verify(token)


def test_non_object_payload_rejected() -> None:
    key = signed_token.derive_key("secret")
    token = signed_token.encode(["not", "a", "dict"], key)

    with pytest.raises(InvalidToken):
        TokenService("secret").verify(token)


def test_derive_key_stable() -> None:
    assert signed_token.derive_key("secret") == signed_token.derive_key("secret")
    assert signed_token.derive_key("secret") != signed_token.derive_key("other")
