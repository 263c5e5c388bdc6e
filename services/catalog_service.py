"""
Catalog view derivation

Turns the full product list plus one combined filter state into the view the
shop page renders:

- only live products (no dropDate, or dropDate already passed) are considered
- products dropped/created in the last 7 days form the "fresh" segment,
  always shown in full, newest first
- everything else is sorted by the chosen mode and paginated 12 at a time

`derive_catalog_view` is pure: the same (products, filters, now) always gives
the same output.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from models.product import Product
from services.debounce import DEFAULT_SEARCH_DEBOUNCE_SECONDS, Debouncer

PAGE_SIZE = 12
FRESH_WINDOW = timedelta(days=7)
RELATED_PRODUCTS_LIMIT = 4

SIZE_ORDER = ["XS", "S", "M", "L", "XL", "XXL", "3XL", "4XL"]

PRICE_RANGES: Dict[str, Tuple[int, Optional[int]]] = {
    "All": (0, None),
    "Under ₹1000": (0, 999),
    "₹1000 - ₹1500": (1000, 1500),
    "Over ₹1500": (1501, None),
}


class AvailabilityFilter(str, Enum):
    ALL = "All"
    AVAILABLE = "Available"
    SOLD_OUT = "Sold Out"


class SortMode(str, Enum):
    FEATURED = "Featured"
    NEWEST = "Newest"
    PRICE_ASC = "Price: Low to High"
    PRICE_DESC = "Price: High to Low"
    NAME_ASC = "Name: A-Z"


class CatalogFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    search: str = ""
    status: AvailabilityFilter = AvailabilityFilter.AVAILABLE
    brands: FrozenSet[str] = frozenset()
    sizes: FrozenSet[str] = frozenset()
    conditions: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    price_min: int = Field(0, ge=0)
    price_max: Optional[int] = Field(None, ge=0)
    sort: SortMode = SortMode.FEATURED
    visible_count: int = Field(PAGE_SIZE, ge=1)

    def with_price_range(self, label: str) -> "CatalogFilters":
        lo, hi = PRICE_RANGES[label]
        return self.model_copy(update={"price_min": lo, "price_max": hi})


class CatalogView(BaseModel):
    fresh_items: List[Product] = Field(default_factory=list)
    paged_other_items: List[Product] = Field(default_factory=list)
    total_other_count: int = 0
    visible_count: int = PAGE_SIZE

    @property
    def has_more(self) -> bool:
        return len(self.paged_other_items) < self.total_other_count


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_live(product: Product, now: Optional[datetime] = None) -> bool:
    return product.is_live(now or _utcnow())


def is_fresh(product: Product, now: datetime) -> bool:
    return product.effective_date >= now - FRESH_WINDOW


def matches_search(product: Product, search: str) -> bool:
    q = (search or "").strip().lower()
    if not q:
        return True
    return any(
        q in (value or "").lower()
        for value in (product.name, product.brand, product.category, product.description)
    )


def matches_filters(product: Product, filters: CatalogFilters) -> bool:
    if filters.status == AvailabilityFilter.AVAILABLE and product.sold:
        return False
    if filters.status == AvailabilityFilter.SOLD_OUT and not product.sold:
        return False
    if filters.brands and product.brand not in filters.brands:
        return False
    if filters.sizes and product.size not in filters.sizes:
        return False
    if filters.conditions and product.condition not in filters.conditions:
        return False
    if filters.categories and product.category not in filters.categories:
        return False
    if product.price < filters.price_min:
        return False
    if filters.price_max is not None and product.price > filters.price_max:
        return False
    return matches_search(product, filters.search)


def sort_products(products: Sequence[Product], mode: SortMode) -> List[Product]:
    # sorted() is stable, so ties keep sheet order.
    if mode == SortMode.NEWEST:
        return sorted(products, key=lambda p: p.created_at, reverse=True)
    if mode == SortMode.PRICE_ASC:
        return sorted(products, key=lambda p: p.price)
    if mode == SortMode.PRICE_DESC:
        return sorted(products, key=lambda p: p.price, reverse=True)
    if mode == SortMode.NAME_ASC:
        return sorted(products, key=lambda p: p.name.casefold())
    return list(products)


def derive_catalog_view(
    products: Sequence[Product],
    filters: CatalogFilters,
    now: Optional[datetime] = None,
) -> CatalogView:
    now = now or _utcnow()

    fresh: List[Product] = []
    other: List[Product] = []
    for p in products:
        if not p.is_live(now) or not matches_filters(p, filters):
            continue
        if is_fresh(p, now):
            fresh.append(p)
        else:
            other.append(p)

    fresh = sorted(fresh, key=lambda p: p.effective_date, reverse=True)
    other = sort_products(other, filters.sort)

    return CatalogView(
        fresh_items=fresh,
        paged_other_items=other[: filters.visible_count],
        total_other_count=len(other),
        visible_count=filters.visible_count,
    )


def live_products(products: Sequence[Product], now: Optional[datetime] = None) -> List[Product]:
    now = now or _utcnow()
    return [p for p in products if p.is_live(now)]


def catalog_facets(products: Sequence[Product], now: Optional[datetime] = None) -> Dict[str, List[str]]:
    """Filter options derived from the live catalog."""
    visible = live_products(products, now)
    present_sizes = {p.size for p in visible}
    return {
        "categories": sorted({p.category for p in visible if p.category}),
        "brands": sorted({p.brand for p in visible if p.brand}),
        "sizes": [s for s in SIZE_ORDER if s in present_sizes],
        "conditions": sorted({p.condition for p in visible if p.condition}),
        "statuses": [s.value for s in AvailabilityFilter],
        "price_ranges": list(PRICE_RANGES.keys()),
        "sort_modes": [s.value for s in SortMode],
    }


def active_filter_count(filters: CatalogFilters) -> int:
    count = 0
    if filters.search:
        count += 1
    if filters.status != AvailabilityFilter.AVAILABLE:
        count += 1
    if filters.price_min != 0 or filters.price_max is not None:
        count += 1
    count += len(filters.brands) + len(filters.sizes) + len(filters.conditions) + len(filters.categories)
    return count


def find_product(products: Sequence[Product], product_id: str) -> Optional[Product]:
    for p in products:
        if p.id == product_id:
            return p
    return None


def related_products(
    product: Product,
    products: Sequence[Product],
    now: Optional[datetime] = None,
    limit: int = RELATED_PRODUCTS_LIMIT,
) -> List[Product]:
    """Other available, live products in the same category, in sheet order."""
    now = now or _utcnow()
    out = [
        p
        for p in products
        if p.category == product.category and p.id != product.id and not p.sold and p.is_live(now)
    ]
    return out[:limit]


class CatalogState:
    """
    Combined filter state for one shop view.

    Any filter change resets pagination to one page; `load_more` grows it.
    Search text goes through a debouncer so the view is recomputed only once
    typing pauses.
    """

    def __init__(
        self,
        filters: Optional[CatalogFilters] = None,
        search_delay: float = DEFAULT_SEARCH_DEBOUNCE_SECONDS,
    ):
        self.filters = filters or CatalogFilters()
        self._search = Debouncer(self._apply_search, delay=search_delay)

    def update(self, **changes: Any) -> CatalogFilters:
        if not changes:
            return self.filters
        if set(changes) != {"visible_count"}:
            changes.setdefault("visible_count", PAGE_SIZE)
        self.filters = CatalogFilters.model_validate({**self.filters.model_dump(), **changes})
        return self.filters

    def load_more(self) -> CatalogFilters:
        return self.update(visible_count=self.filters.visible_count + PAGE_SIZE)

    def reset(self) -> CatalogFilters:
        self._search.cancel()
        self.filters = CatalogFilters()
        return self.filters

    def set_search(self, term: str) -> None:
        self._search.push(term)

    def flush_search(self) -> None:
        self._search.flush()

    @property
    def search_pending(self) -> bool:
        return self._search.pending

    def _apply_search(self, term: str) -> None:
        if term != self.filters.search:
            self.update(search=term)

    def view(self, products: Sequence[Product], now: Optional[datetime] = None) -> CatalogView:
        return derive_catalog_view(products, self.filters, now)
