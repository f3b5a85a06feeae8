import base64
import dataclasses
import urllib.parse

from starlette.testclient import TestClient

from auth.errors import ExchangeFailed, ProviderUnavailable
from auth.models import ExternalIdentity
from auth.oidc_client import (
    GOOGLE_ISSUER,
    ClientHandle,
    OIDCClient,
    ProviderCredentials,
    ProviderMetadata,
    TokenSet,
)
from auth.signed_token import TokenService
from auth.state_store import MemoryStateStore, StateStore
from auth.user_directory import MemoryUserDirectory
from gamefinder.app import create_app
from gamefinder.env import load_settings

FRONTEND_URL = "http://localhost:3000"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
VALID_CODE = "VALIDCODE"


def google_handle() -> ClientHandle:
    return ClientHandle(
        provider="google",
        credentials=ProviderCredentials(
            client_id="client-123",
            client_secret="secret-456",
            redirect_uri="http://localhost:3001/auth/google/callback",
        ),
        metadata=ProviderMetadata(
            issuer=GOOGLE_ISSUER,
            authorization_endpoint=GOOGLE_AUTHORIZE_URL,
            token_endpoint=GOOGLE_TOKEN_URL,
            userinfo_endpoint=GOOGLE_USERINFO_URL,
        ),
    )


def google_identity(**overrides) -> ExternalIdentity:
    fields = {
        "provider": "google",
        "provider_user_id": "google-sub-1",
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "picture": "https://example.com/ada.png",
    }
    fields.update(overrides)
    return ExternalIdentity(**fields)


class FakeOIDCClient:
    """Stands in for the provider: accepts VALID_CODE and returns a fixed identity."""

    def __init__(
        self,
        *,
        identity: ExternalIdentity | None = None,
        discover_error: Exception | None = None,
        exchange_error: Exception | None = None,
        identity_error: Exception | None = None,
    ) -> None:
        self.handle = google_handle()
        self.identity = identity or google_identity()
        self.discover_error = discover_error
        self.exchange_error = exchange_error
        self.identity_error = identity_error
        self.exchange_calls: list[dict] = []
        self._url_builder = OIDCClient({})

    async def discover(self, provider: str) -> ClientHandle:
        if self.discover_error is not None:
            raise self.discover_error
        if provider != "google":
            raise ProviderUnavailable(f"Unsupported OAuth provider: {provider}")
        return self.handle

    def build_authorization_url(self, handle: ClientHandle, **kwargs) -> str:
        return self._url_builder.build_authorization_url(handle, **kwargs)

    async def exchange_code(self, handle: ClientHandle, **kwargs) -> TokenSet:
        self.exchange_calls.append(kwargs)
        if self.exchange_error is not None:
            raise self.exchange_error
        if kwargs["code"] != VALID_CODE:
            raise ExchangeFailed("Token request failed with status 400: invalid_grant")
        return TokenSet(
            access_token="provider-access-token",
            token_type="Bearer",
            expires_in=3600,
            id_token="provider-id-token",
            scope="openid email profile",
        )

    async def fetch_identity(self, handle: ClientHandle, token_set: TokenSet) -> ExternalIdentity:
        del handle, token_set
        if self.identity_error is not None:
            raise self.identity_error
        return self.identity


@dataclasses.dataclass
class AuthApp:
    client: TestClient
    oidc: FakeOIDCClient
    users: MemoryUserDirectory
    states: StateStore
    tokens: TokenService
    settings: object


def build_settings(**environ):
    base = {
        "APP_ENV": "development",
        "FRONTEND_URL": FRONTEND_URL,
        "SESSION_SECRET": "test-secret",
        "COOKIE_DOMAIN": "",
        "GAMEFINDER_DEBUG": "0",
    }
    base.update(environ)
    return load_settings(base)


def build_auth_app(*, oidc=None, states=None, tokens=None, **environ) -> AuthApp:
    settings = build_settings(**environ)
    if oidc is None:
        oidc = FakeOIDCClient()
    if states is None:
        states = MemoryStateStore()
    if tokens is None:
        tokens = TokenService(settings.session_secret, ttl_seconds=settings.session_ttl_seconds)
    users = MemoryUserDirectory()
    app = create_app(
        settings,
        oidc_client=oidc,
        user_directory=users,
        state_store=states,
        token_service=tokens,
    )
    return AuthApp(
        client=TestClient(app),
        oidc=oidc,
        users=users,
        states=states,
        tokens=tokens,
        settings=settings,
    )


def query_of(url: str) -> dict[str, list[str]]:
    return urllib.parse.parse_qs(urllib.parse.urlparse(url).query)


def start_login(client: TestClient, redirect: str = "/dashboard") -> str:
    response = client.get("/auth/google", params={"redirect": redirect}, follow_redirects=False)
    assert response.status_code == 302
    return query_of(response.headers["location"])["state"][0]


def tamper_signature(token: str, position: int = 0) -> str:
    data_b64, sig_b64 = token.split(".")
    sig = bytearray(base64.urlsafe_b64decode(sig_b64 + "=" * (-len(sig_b64) % 4)))
    sig[position] ^= 0x01
    return f"{data_b64}.{base64.urlsafe_b64encode(bytes(sig)).rstrip(b'=').decode()}"
