from services.storefront_config import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_CSV_URL,
    DEFAULT_WHATSAPP_NUMBER,
    get_storefront_settings,
)


def test_defaults(monkeypatch):
    monkeypatch.delenv("STOREFRONT_CSV_URL", raising=False)

    settings = get_storefront_settings()
    assert settings.csv_url == DEFAULT_CSV_URL
    assert settings.csv_proxy == ""
    assert settings.order_endpoint_url is None
    assert settings.whatsapp_number == DEFAULT_WHATSAPP_NUMBER
    assert settings.cache_ttl_seconds == DEFAULT_CACHE_TTL_SECONDS
    assert settings.database_url is None
    assert not settings.is_production


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("STOREFRONT_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("STOREFRONT_INSTAGRAM_HANDLE", "@someshop")
    monkeypatch.setenv("STOREFRONT_ORDER_ENDPOINT_URL", " https://script.example.com/exec ")
    monkeypatch.setenv("APP_ENV", "production")

    settings = get_storefront_settings()
    assert settings.cache_ttl_seconds == 60
    assert settings.instagram_handle == "someshop"
    assert settings.order_endpoint_url == "https://script.example.com/exec"
    assert settings.is_production


def test_invalid_numbers_fall_back(monkeypatch):
    monkeypatch.setenv("STOREFRONT_CACHE_TTL_SECONDS", "soon")
    monkeypatch.setenv("STOREFRONT_HTTP_TIMEOUT_SECONDS", "-3")

    settings = get_storefront_settings()
    assert settings.cache_ttl_seconds == DEFAULT_CACHE_TTL_SECONDS
    assert settings.http_timeout_seconds == 15.0


def test_empty_csv_url_disables_default(monkeypatch):
    monkeypatch.setenv("STOREFRONT_CSV_URL", "")
    assert get_storefront_settings().csv_url == ""
