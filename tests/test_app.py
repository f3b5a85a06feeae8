from auth.signed_token import TokenService
from auth.state_store import FileStateStore, MemoryStateStore
from auth.user_directory import MemoryUserDirectory
from gamefinder.app import create_app
from tests.auth_helpers import FakeOIDCClient, build_settings


def test_create_app_keeps_injected_empty_stores() -> None:
    users = MemoryUserDirectory()
    states = MemoryStateStore()
    tokens = TokenService("test-secret")

    app = create_app(
        build_settings(),
        oidc_client=FakeOIDCClient(),
        user_directory=users,
        state_store=states,
        token_service=tokens,
    )

    flow = app.state.auth_flow
    assert flow.user_directory is users
    assert flow.state_store is states
    assert flow.token_service is tokens


def test_create_app_builds_file_store_from_settings(tmp_path) -> None:
    path = tmp_path / "state.json"

    app = create_app(
        build_settings(STATE_STORE_PATH=str(path)),
        oidc_client=FakeOIDCClient(),
    )

    assert isinstance(app.state.auth_flow.state_store, FileStateStore)
