import pytest

from tests.auth_helpers import AuthApp, build_auth_app


@pytest.fixture
def auth_app() -> AuthApp:
    return build_auth_app()
