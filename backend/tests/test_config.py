import pytest
from pydantic import ValidationError

from teamchat.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("APP_ENV", "SESSION_SECRET_KEY", "CORS_ORIGINS", "SESSION_RESOLVER"):
        monkeypatch.delenv(name, raising=False)


def test_development_defaults():
    settings = Settings(_env_file=None)
    assert settings.app_env == "development"
    assert settings.session_secret_key
    assert settings.session_resolver == "jwt"
    assert settings.cors_origin_list == ["http://localhost:5173"]


def test_secret_required_outside_development():
    with pytest.raises(ValidationError, match="SESSION_SECRET_KEY"):
        Settings(_env_file=None, app_env="production")


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("SESSION_SECRET_KEY", "s3cret")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example.com, https://b.example.com")
    monkeypatch.setenv("SESSION_RESOLVER", "http")

    settings = Settings(_env_file=None)

    assert settings.app_env == "staging"
    assert settings.session_secret_key == "s3cret"
    assert settings.session_resolver == "http"
    assert settings.cors_origin_list == ["https://a.example.com", "https://b.example.com"]
