"""
Storefront configuration

Reads runtime settings from environment variables on every call so that
deployments (and tests) can override them without a restart.
"""
import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_CSV_URL = (
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vROf3telhYrMdpmSSJXQBLQYVJHuOGvJ9SAznIol-KAMxZ0p7QicCKtAPV3HXzpO41xrWF9cXiuZw6A/pub?output=csv"
)
DEFAULT_WHATSAPP_NUMBER = "919760427922"
DEFAULT_INSTAGRAM_HANDLE = "thriftbymusk"
DEFAULT_CACHE_TTL_SECONDS = 15 * 60
DEFAULT_HTTP_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class StorefrontSettings:
    csv_url: str
    csv_proxy: str
    order_endpoint_url: Optional[str]
    whatsapp_number: str
    instagram_handle: str
    cache_ttl_seconds: float
    http_timeout_seconds: float
    database_url: Optional[str]
    env: str

    @property
    def is_production(self) -> bool:
        return self.env == "production"


def _read_str(env_key: str, default: str = "") -> str:
    # An explicitly empty variable disables the setting instead of restoring the default.
    return os.getenv(env_key, default).strip()


def _read_positive_float(env_key: str, default: float) -> float:
    try:
        val = float(os.getenv(env_key, ""))
    except Exception:
        return default
    if val != val or val <= 0:  # NaN check
        return default
    return val


def get_storefront_settings() -> StorefrontSettings:
    """Return storefront settings, falling back to defaults for missing/invalid values."""
    return StorefrontSettings(
        csv_url=_read_str("STOREFRONT_CSV_URL", DEFAULT_CSV_URL),
        csv_proxy=_read_str("STOREFRONT_CSV_PROXY"),
        order_endpoint_url=_read_str("STOREFRONT_ORDER_ENDPOINT_URL") or None,
        whatsapp_number=_read_str("STOREFRONT_WHATSAPP_NUMBER", DEFAULT_WHATSAPP_NUMBER),
        instagram_handle=_read_str("STOREFRONT_INSTAGRAM_HANDLE", DEFAULT_INSTAGRAM_HANDLE).lstrip("@"),
        cache_ttl_seconds=_read_positive_float("STOREFRONT_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
        http_timeout_seconds=_read_positive_float("STOREFRONT_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        database_url=_read_str("STOREFRONT_DATABASE_URL") or None,
        env=_read_str("APP_ENV", "dev"),
    )
