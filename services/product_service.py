from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import httpx

from db.storage import KeyValueStorage
from models.product import Product
from services.csv_source import fetch_csv_text, parse_csv, resolve_csv_url
from services.product_cache import ProductCache, cache_key_for
from services.product_normalizer import NormalizationReport, normalize_rows
from services.storefront_errors import ConfigurationError, FetchError, StaleDataWarning

logger = logging.getLogger(__name__)

STALE_DATA_MESSAGE = "Couldn't refresh product list. Showing last available data."


async def load_products_from_source(
    csv_url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> NormalizationReport:
    """Network half of the pipeline: fetch -> parse -> normalize. No caching."""
    text = await fetch_csv_text(csv_url, client=client)
    return normalize_rows(parse_csv(text))


async def fetch_products(
    csv_url: Optional[str] = None,
    *,
    storage: KeyValueStorage,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
    ttl_seconds: Optional[float] = None,
) -> Tuple[List[Product], str, Optional[str]]:
    """
    Cache-aware product fetch.

    Returns (products, source, warning) where source is one of:
    - "cache": snapshot younger than the TTL, no network access
    - "network": freshly fetched and written back to the cache
    - "stale_cache": the sheet failed, the last snapshot is served with a warning

    Raises ConfigurationError/FetchError only when the sheet fails and no
    snapshot exists at all.
    """
    now = now or datetime.now(timezone.utc)
    url, is_override = resolve_csv_url(csv_url)
    cache = ProductCache(storage, key=cache_key_for(url, is_override=is_override), ttl_seconds=ttl_seconds)

    cached = await cache.read_fresh(now)
    if cached is not None:
        return cached, "cache", None

    try:
        logger.info("catalog.fetch.network", extra={"csv_url": url, "is_override": is_override})
        report = await load_products_from_source(url, client=client)
    except (FetchError, ConfigurationError) as e:
        logger.error(f"[catalog] error fetching or processing product data: {e}")
        stale = await cache.read_any()
        if stale is None:
            raise
        warning = StaleDataWarning(STALE_DATA_MESSAGE, stale_products=stale)
        logger.warning(
            "catalog.cache.stale_fallback",
            extra={"csv_url": url, "product_count": len(stale), "cause": str(e)},
        )
        return warning.stale_products, "stale_cache", str(warning)

    await cache.write(report.products, now)
    return report.products, "network", None
