"""
Product data provider

Owns the current catalog for one sheet source and exposes it together with
loading/error state. Only one fetch cycle runs at a time: a refetch issued
while a cycle is in flight awaits that cycle instead of starting another.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from db.storage import KeyValueStorage
from models.product import Product
from services.storefront_errors import ConfigurationError, StorefrontError
from services.product_service import fetch_products

logger = logging.getLogger(__name__)

EMPTY_OVERRIDE_MESSAGE = (
    "No products found. Check if the Google Sheet is empty or if the column headers are correct."
)


class ProviderStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    RECOVERABLE_ERROR = "recoverable_error"
    ERROR = "error"


class ProductProvider:
    def __init__(
        self,
        storage: KeyValueStorage,
        csv_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.csv_url = csv_url
        self.client = client
        self.clock = clock

        self.products: List[Product] = []
        self.status: ProviderStatus = ProviderStatus.IDLE
        self.error: Optional[str] = None
        self.warning: Optional[str] = None
        self.source: Optional[str] = None
        self.failure: Optional[StorefrontError] = None
        self._inflight: Optional[asyncio.Task] = None

    @property
    def is_loading(self) -> bool:
        return self.status == ProviderStatus.LOADING

    @property
    def is_override(self) -> bool:
        return bool((self.csv_url or "").strip())

    async def load(self) -> None:
        """Run one fetch cycle, or join the cycle already in flight."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)
            return
        self._inflight = asyncio.ensure_future(self._run_cycle())
        try:
            await asyncio.shield(self._inflight)
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None

    async def refetch(self) -> None:
        await self.load()

    async def ensure_loaded(self) -> None:
        """Load on first use, and retry after a hard error."""
        if self.status in (ProviderStatus.IDLE, ProviderStatus.ERROR):
            await self.load()

    async def _run_cycle(self) -> None:
        self.status = ProviderStatus.LOADING
        self.error = None
        self.warning = None
        self.failure = None
        now = self.clock() if self.clock else None
        try:
            products, source, warning = await fetch_products(
                self.csv_url,
                storage=self.storage,
                client=self.client,
                now=now,
            )
        except StorefrontError as e:
            # Hard failure: keep whatever was shown before.
            self.failure = e
            self.error = str(e) or "An unknown error occurred while fetching products."
            self.status = ProviderStatus.ERROR
            logger.error(f"[provider] failed to load products: {e}")
            return
        except Exception as e:
            self.error = "An unknown error occurred while fetching products."
            self.status = ProviderStatus.ERROR
            logger.error(f"[provider] unexpected failure loading products: {e.__class__.__name__}: {e}")
            raise

        self.source = source
        if warning:
            self.products = products
            self.warning = warning
            self.status = ProviderStatus.RECOVERABLE_ERROR
            return

        if not products and self.is_override:
            self.failure = ConfigurationError(EMPTY_OVERRIDE_MESSAGE)
            self.error = str(self.failure)
            self.status = ProviderStatus.ERROR
            logger.error(f"[provider] override sheet produced no products: {self.csv_url}")
            return

        self.products = products
        self.status = ProviderStatus.SUCCESS

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "is_loading": self.is_loading,
            "error": self.error,
            "warning": self.warning,
            "source": self.source,
            "product_count": len(self.products),
            "csv_url": self.csv_url,
        }
