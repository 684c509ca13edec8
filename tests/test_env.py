import pytest

from auth.google_oauth2 import DEFAULT_SCOPES
from gdmcp.env import is_truthy, load_scopes, parse_csv_env, validate_env


def test_is_truthy() -> None:
    assert is_truthy("1")
    assert is_truthy(" Yes ")
    assert not is_truthy("0")
    assert not is_truthy(None)


def test_parse_csv_env(clean_env) -> None:
    clean_env.setenv("CORS_ORIGINS", "https://a.example, ,https://b.example")

    assert parse_csv_env("CORS_ORIGINS") == {"https://a.example", "https://b.example"}


def test_load_scopes_default(clean_env) -> None:
    assert load_scopes() == DEFAULT_SCOPES


def test_load_scopes_from_env(clean_env) -> None:
    clean_env.setenv("GOOGLE_OAUTH_SCOPES", "openid https://www.googleapis.com/auth/drive.file")

    assert load_scopes() == ["openid", "https://www.googleapis.com/auth/drive.file"]


def test_validate_env_lists_missing_credentials(clean_env) -> None:
    with pytest.raises(RuntimeError, match="GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET"):
        validate_env()


def test_validate_env_rejects_bad_redirect_uri(clean_env) -> None:
    clean_env.setenv("GOOGLE_CLIENT_ID", "id")
    clean_env.setenv("GOOGLE_CLIENT_SECRET", "secret")
    clean_env.setenv("GOOGLE_REDIRECT_URI", "ftp://example.com/callback")

    with pytest.raises(RuntimeError, match="GOOGLE_REDIRECT_URI"):
        validate_env()


def test_validate_env_accepts_minimal_config(clean_env) -> None:
    clean_env.setenv("GOOGLE_CLIENT_ID", "id")
    clean_env.setenv("GOOGLE_CLIENT_SECRET", "secret")

    validate_env()
