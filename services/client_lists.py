from __future__ import annotations

from typing import List, Optional, Sequence

from db.storage import KeyValueStorage, read_json, write_json
from models.product import Product

SAVED_ITEMS_KEY = "storefront:saved:v1"
RECENTLY_VIEWED_KEY = "storefront:recently_viewed:v1"
MAX_RECENTLY_VIEWED = 8


class _ProductIdList:
    key: str = ""

    def __init__(self, ids: Optional[Sequence[str]] = None):
        self.ids: List[str] = [str(i) for i in ids or [] if i]

    def resolve(self, products: Sequence[Product]) -> List[Product]:
        """Products for the stored ids, in list order; ids no longer in the catalog are skipped."""
        by_id = {p.id: p for p in products}
        return [by_id[i] for i in self.ids if i in by_id]

    @classmethod
    async def load(cls, storage: KeyValueStorage):
        data = await read_json(storage, cls.key)
        return cls(data if isinstance(data, list) else [])

    async def save(self, storage: KeyValueStorage) -> bool:
        return await write_json(storage, self.key, self.ids)


class SavedItems(_ProductIdList):
    key = SAVED_ITEMS_KEY

    def save_item(self, product_id: str) -> bool:
        if product_id in self.ids:
            return False
        self.ids.append(product_id)
        return True

    def unsave_item(self, product_id: str) -> bool:
        if product_id not in self.ids:
            return False
        self.ids = [i for i in self.ids if i != product_id]
        return True

    def is_saved(self, product_id: str) -> bool:
        return product_id in self.ids


class RecentlyViewed(_ProductIdList):
    key = RECENTLY_VIEWED_KEY

    def add(self, product_id: str) -> None:
        self.ids = ([product_id] + [i for i in self.ids if i != product_id])[:MAX_RECENTLY_VIEWED]
