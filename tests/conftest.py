import pytest

from tests.oauth_helpers import RecordingFactory, _grant


_GATEWAY_ENV = (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
    "GOOGLE_OAUTH_SCOPES",
    "GOOGLE_OAUTH_TOKENS",
    "FRONTEND_URL",
    "CORS_ORIGINS",
    "MCP_TRANSPORT",
    "MCP_HOST",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _GATEWAY_ENV:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def grant():
    return _grant()


@pytest.fixture
def recording_factory() -> RecordingFactory:
    return RecordingFactory()
