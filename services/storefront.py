"""
Storefront container

Explicit owner of all client-side state the shop front end works with: the
product providers, cart, saved and recently viewed lists. Routes receive it
through dependency injection instead of reaching for module globals.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

import httpx

from db.storage import KeyValueStorage, build_storage
from services.cart_service import Cart, load_cart, save_cart
from services.client_lists import RecentlyViewed, SavedItems
from services.order_service import OrderCheckout
from services.product_provider import ProductProvider

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage or build_storage()
        self.client = client
        self.clock = clock
        self.cart = Cart()
        self.saved = SavedItems()
        self.recently_viewed = RecentlyViewed()
        self._providers: Dict[str, ProductProvider] = {}

    async def startup(self) -> None:
        await self.storage.connect()
        self.cart = await load_cart(self.storage)
        self.saved = await SavedItems.load(self.storage)
        self.recently_viewed = await RecentlyViewed.load(self.storage)
        logger.info(
            "storefront.started",
            extra={"cart_items": len(self.cart), "saved_items": len(self.saved.ids)},
        )

    async def shutdown(self) -> None:
        await self.storage.disconnect()

    def provider(self, csv_url: Optional[str] = None) -> ProductProvider:
        key = (csv_url or "").strip()
        if key not in self._providers:
            self._providers[key] = ProductProvider(
                self.storage,
                key or None,
                client=self.client,
                clock=self.clock,
            )
        return self._providers[key]

    async def products_provider(self, csv_url: Optional[str] = None) -> ProductProvider:
        provider = self.provider(csv_url)
        await provider.ensure_loaded()
        return provider

    def checkout(self) -> OrderCheckout:
        return OrderCheckout(self.cart, client=self.client)

    def now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    async def persist_cart(self) -> bool:
        return await save_cart(self.storage, self.cart)

    async def persist_lists(self) -> None:
        await self.saved.save(self.storage)
        await self.recently_viewed.save(self.storage)
