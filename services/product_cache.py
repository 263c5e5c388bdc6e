"""
Product snapshot cache

Keeps the last successful catalog under a fixed storage key so the service can
answer instantly while fresh and fall back to stale data when the sheet is
unreachable. Nothing in here raises: storage problems are logged and treated
as a cache miss.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from db.storage import KeyValueStorage, read_json, write_json
from models.product import CachedProductSnapshot, Product
from services.storefront_config import get_storefront_settings

logger = logging.getLogger(__name__)

PRODUCT_CACHE_KEY = "storefront:products:v1"


def cache_key_for(csv_url: Optional[str] = None, *, is_override: bool = False) -> str:
    """Default sheet uses the fixed key; override sheets get their own namespace."""
    if not csv_url or not is_override:
        return PRODUCT_CACHE_KEY
    digest = hashlib.sha1(csv_url.encode()).hexdigest()[:12]
    return f"{PRODUCT_CACHE_KEY}:{digest}"


def _to_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


class ProductCache:
    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = PRODUCT_CACHE_KEY,
        ttl_seconds: Optional[float] = None,
    ):
        self.storage = storage
        self.key = key
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_storefront_settings().cache_ttl_seconds

    async def _read_snapshot(self) -> Optional[CachedProductSnapshot]:
        data = await read_json(self.storage, self.key)
        if data is None:
            return None
        try:
            return CachedProductSnapshot.model_validate(data)
        except ValidationError as e:
            logger.error(f"[cache] discarding unreadable snapshot under {self.key}: {e.error_count()} errors")
            return None

    async def read_fresh(self, now: Optional[datetime] = None) -> Optional[List[Product]]:
        snapshot = await self._read_snapshot()
        if snapshot is None:
            return None
        now = now or datetime.now(timezone.utc)
        age_ms = _to_millis(now) - snapshot.timestamp
        if age_ms < self.ttl_seconds * 1000:
            logger.info("catalog.cache.fresh_hit", extra={"key": self.key, "age_ms": age_ms})
            return snapshot.products
        return None

    async def read_any(self) -> Optional[List[Product]]:
        snapshot = await self._read_snapshot()
        if snapshot is None:
            return None
        return snapshot.products

    async def write(self, products: List[Product], now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        snapshot = CachedProductSnapshot(timestamp=_to_millis(now), products=products)
        ok = await write_json(self.storage, self.key, snapshot.model_dump(mode="json", by_alias=True))
        if ok:
            logger.info("catalog.cache.updated", extra={"key": self.key, "product_count": len(products)})
        return ok
