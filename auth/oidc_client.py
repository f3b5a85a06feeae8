from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass

import httpx

from auth.errors import ExchangeFailed, IdentityFetchFailed, ProviderUnavailable
from auth.models import ExternalIdentity
from auth.urls import append_query_params

LOGGER = logging.getLogger("gamefinder.auth")

GOOGLE_ISSUER = "https://accounts.google.com"
PROVIDER_ISSUERS = {"google": GOOGLE_ISSUER}
DEFAULT_SCOPE = "openid email profile"
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class ProviderCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str


@dataclass
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str

    @classmethod
    def from_payload(cls, payload: dict) -> "ProviderMetadata":
        fields = {}
        for name in ("issuer", "authorization_endpoint", "token_endpoint", "userinfo_endpoint"):
            value = payload.get(name)
            if not isinstance(value, str) or not value:
                raise ProviderUnavailable(f"Discovery document missing {name}.")
            fields[name] = value
        return cls(**fields)


@dataclass
class ClientHandle:
    provider: str
    credentials: ProviderCredentials
    metadata: ProviderMetadata


@dataclass
class TokenSet:
    access_token: str
    token_type: str
    expires_in: int | None
    id_token: str | None
    scope: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenSet":
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ExchangeFailed("Token response missing access_token.")

        expires_in = payload.get("expires_in")
        id_token = payload.get("id_token")
        return cls(
            access_token=access_token,
            token_type=str(payload.get("token_type", "Bearer")),
            expires_in=expires_in if isinstance(expires_in, int) else None,
            id_token=id_token if isinstance(id_token, str) else None,
            scope=str(payload.get("scope", "")),
        )


def generate_code_verifier() -> str:
    while True:
        verifier = secrets.token_urlsafe(64)
        if 43 <= len(verifier) <= 128:
            return verifier


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


class OIDCClient:
    """Discovery, authorization URL construction, code exchange and userinfo
    lookup against OpenID Connect providers.

    Discovered provider metadata is cached per provider name for the life of
    the process and never refreshed; providers are assumed not to move their
    endpoints while we are running.
    """

    def __init__(
        self,
        credentials: dict[str, ProviderCredentials],
        *,
        issuers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client_factory=None,
    ) -> None:
        self._credentials = dict(credentials)
        self._issuers = dict(PROVIDER_ISSUERS if issuers is None else issuers)
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client
        self._handles: dict[str, ClientHandle] = {}
        self._discovery_lock = asyncio.Lock()

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout)

    async def discover(self, provider: str) -> ClientHandle:
        handle = self._handles.get(provider)
        if handle is not None:
            return handle

        async with self._discovery_lock:
            handle = self._handles.get(provider)
            if handle is None:
                handle = await self._discover_uncached(provider)
                self._handles[provider] = handle
        return handle

    async def _discover_uncached(self, provider: str) -> ClientHandle:
        issuer = self._issuers.get(provider)
        credentials = self._credentials.get(provider)
        if issuer is None or credentials is None:
            raise ProviderUnavailable(f"Unsupported OAuth provider: {provider}")
        if not credentials.client_id or not credentials.client_secret:
            raise ProviderUnavailable(f"OAuth credentials for {provider} are not configured.")

        discovery_url = f"{issuer.rstrip('/')}/.well-known/openid-configuration"
        try:
            async with self._client_factory() as http_client:
                response = await http_client.get(discovery_url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as error:
            LOGGER.error("Failed to discover %s OAuth configuration: %s", provider, error)
            raise ProviderUnavailable(f"Failed to initialize {provider} OAuth client.") from error

        if not isinstance(payload, dict):
            raise ProviderUnavailable("Discovery document must be a JSON object.")
        metadata = ProviderMetadata.from_payload(payload)
        LOGGER.info("Discovered %s OAuth endpoints at %s", provider, metadata.issuer)
        return ClientHandle(provider=provider, credentials=credentials, metadata=metadata)

    def build_authorization_url(
        self,
        handle: ClientHandle,
        *,
        scope: str,
        code_challenge: str,
        state: str,
        redirect_uri: str,
    ) -> str:
        return append_query_params(
            handle.metadata.authorization_endpoint,
            {
                "client_id": handle.credentials.client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "scope": scope,
                "state": state,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
            },
        )

    async def exchange_code(
        self,
        handle: ClientHandle,
        *,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> TokenSet:
        payload = {
            "grant_type": "authorization_code",
            "client_id": handle.credentials.client_id,
            "client_secret": handle.credentials.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        try:
            async with self._client_factory() as http_client:
                response = await http_client.post(handle.metadata.token_endpoint, data=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as error:
            raise ExchangeFailed(
                f"Token request failed with status {error.response.status_code}: "
                f"{error.response.text}"
            ) from error
        except httpx.HTTPError as error:
            raise ExchangeFailed(f"Token request failed: {error!r}") from error
        except ValueError as error:
            raise ExchangeFailed("Token response was not valid JSON.") from error

        if not isinstance(body, dict):
            raise ExchangeFailed("Token response must be a JSON object.")
        return TokenSet.from_payload(body)

    async def fetch_identity(self, handle: ClientHandle, token_set: TokenSet) -> ExternalIdentity:
        headers = {"Authorization": f"Bearer {token_set.access_token}"}
        try:
            async with self._client_factory() as http_client:
                response = await http_client.get(handle.metadata.userinfo_endpoint, headers=headers)
                response.raise_for_status()
                claims = response.json()
        except httpx.HTTPStatusError as error:
            raise IdentityFetchFailed(
                f"Userinfo request failed with status {error.response.status_code}."
            ) from error
        except httpx.HTTPError as error:
            raise IdentityFetchFailed(f"Userinfo request failed: {error!r}") from error
        except ValueError as error:
            raise IdentityFetchFailed("Userinfo response was not valid JSON.") from error

        if not isinstance(claims, dict):
            raise IdentityFetchFailed("Userinfo response must be a JSON object.")

        subject = claims.get("sub")
        email = claims.get("email")
        if not isinstance(subject, str) or not subject:
            raise IdentityFetchFailed("Userinfo response missing sub.")
        if not isinstance(email, str) or not email:
            raise IdentityFetchFailed("Email is required")

        name = claims.get("name")
        picture = claims.get("picture")
        return ExternalIdentity(
            provider=handle.provider,
            provider_user_id=subject,
            email=email,
            name=name if isinstance(name, str) else "",
            picture=picture if isinstance(picture, str) else None,
        )
