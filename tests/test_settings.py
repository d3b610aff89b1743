import pytest

from preauth.config.settings import Settings


def _set_required_env(monkeypatch) -> None:
    monkeypatch.setenv("MERCHANT_TOKENS", "tok_live:merchant_live")
    monkeypatch.setenv("METRICS_TOKEN", "test-metrics")
    monkeypatch.setenv("STORAGE_BACKEND", "postgres")


def test_production_requires_security_settings(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    for key in ["MERCHANT_TOKENS", "METRICS_TOKEN", "STORAGE_BACKEND"]:
        monkeypatch.delenv(key, raising=False)

    with pytest.raises(ValueError) as excinfo:
        Settings(_env_file=None)

    message = str(excinfo.value)
    assert "MERCHANT_TOKENS" in message
    assert "METRICS_TOKEN" in message
    assert "STORAGE_BACKEND=postgres" in message


def test_production_allows_with_required_settings(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    _set_required_env(monkeypatch)

    settings = Settings(_env_file=None)
    assert settings.app_env == "production"
    assert settings.merchant_token_map == {"tok_live": "merchant_live"}


def test_merchant_token_map_skips_malformed_pairs(monkeypatch):
    monkeypatch.setenv("MERCHANT_TOKENS", " tok_a : merchant_a ,broken,:nobody,tok_b:merchant_b")

    settings = Settings(_env_file=None)
    assert settings.merchant_token_map == {"tok_a": "merchant_a", "tok_b": "merchant_b"}


def test_development_defaults(monkeypatch):
    for key in ["APP_ENV", "MERCHANT_TOKENS", "STORAGE_BACKEND", "VELOCITY_BACKEND"]:
        monkeypatch.delenv(key, raising=False)

    settings = Settings(_env_file=None)
    assert settings.storage_backend == "memory"
    assert settings.velocity_backend == "store"
    assert settings.merchant_token_map == {}
    assert settings.post_auth_monitoring_days == 120
    assert settings.postgres_url.startswith("postgresql+asyncpg://")
