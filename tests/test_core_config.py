import pytest

from eventcanvas.core.config import get_settings


def test_requires_admin_key_in_production(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://app:password@db:5432/eventcanvas")
    monkeypatch.setenv("PROVIDER_ADMIN_API_KEY", "")
    get_settings.cache_clear()

    with pytest.raises(ValueError):
        get_settings()

    get_settings.cache_clear()


def test_loads_environment_values(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/test_eventcanvas.sqlite")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/9")
    monkeypatch.setenv("PROVIDER_PRIORITY_ORDER", "Stability, fal-qwen")
    monkeypatch.setenv("PROVIDERS_DISABLED", "midjourney")
    monkeypatch.setenv("FAL_KEY", "fal-key")
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.env == "development"
    assert settings.database_url.endswith("test_eventcanvas.sqlite")
    assert settings.redis_url.endswith("/9")
    assert settings.priority_order == ["stability", "fal-qwen"]
    assert settings.disabled_providers == {"midjourney"}
    assert settings.fal_key == "fal-key"

    get_settings.cache_clear()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("PROVIDER_PRIORITY_ORDER", "ideogram,dall-e"),
        ("PROVIDER_PRIORITY_ORDER", "ideogram,ideogram"),
        ("PROVIDERS_DISABLED", "dall-e"),
        ("PROVIDER_HEALTH_CACHE_TTL_SECONDS", "0"),
        ("PROVIDER_HEALTH_FAILURE_THRESHOLD", "0"),
        ("PROVIDER_REQUEST_TIMEOUT_SECONDS", "-1"),
        ("PROVIDER_HEALTH_CACHE_BACKEND", "memcached"),
        ("SENTRY_TRACES_SAMPLE_RATE", "1.2"),
    ],
)
def test_rejects_invalid_provider_configuration(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv(name, value)
    get_settings.cache_clear()

    with pytest.raises(ValueError):
        get_settings()

    get_settings.cache_clear()
