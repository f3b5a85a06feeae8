from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Identity:
    id: str
    email: str
    name: str
    picture: str | None
    provider: str
    provider_user_id: str

    def public_view(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "picture": self.picture,
        }


@dataclass
class ExternalIdentity:
    provider: str
    provider_user_id: str
    email: str
    name: str
    picture: str | None = None


@dataclass
class PendingAuth:
    provider: str
    code_verifier: str
    redirect_path: str
    created_at: float


@dataclass
class TokenPayload:
    subject_id: str
    email: str | None
    issued_at: int
    expires_at: int
