"""
Cart and order message composition

Every place that shows or sends an order total goes through
`compute_order_totals`, so the cart, checkout and outgoing messages can never
disagree about the discount.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

from pydantic import ValidationError

from db.storage import KeyValueStorage, read_json, write_json
from models.product import CartItem, CustomerDetails, Product
from services.storefront_config import get_storefront_settings

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "storefront:cart:v1"

DISCOUNT_THRESHOLD = 499
DISCOUNT_RATE = 0.20

Number = Union[int, float]


@dataclass(frozen=True)
class OrderTotals:
    subtotal: int
    discount: float
    total: float

    @property
    def has_discount(self) -> bool:
        return self.discount > 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "formatted_subtotal": format_inr(self.subtotal),
            "formatted_discount": format_inr(self.discount),
            "formatted_total": format_inr(self.total),
        }


def compute_order_totals(items: Iterable[Product]) -> OrderTotals:
    """Flat 20% off the subtotal once it exceeds the threshold."""
    subtotal = sum(item.price for item in items)
    discount = round(subtotal * DISCOUNT_RATE, 2) if subtotal > DISCOUNT_THRESHOLD else 0
    return OrderTotals(subtotal=subtotal, discount=discount, total=round(subtotal - discount, 2))


def _group_indian(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(amount: Number) -> str:
    """Format like Intl en-IN INR with no forced fraction digits: 123456 -> ₹1,23,456."""
    sign = "-" if amount < 0 else ""
    value = round(abs(float(amount)), 2)
    whole = int(value)
    cents = int(round((value - whole) * 100))
    if cents == 100:
        whole, cents = whole + 1, 0
    text = f"₹{_group_indian(str(whole))}"
    if cents:
        text += "." + f"{cents:02d}".rstrip("0")
    return sign + text


def parse_inr(text: str) -> Number:
    """Inverse of format_inr: strips the symbol and separators."""
    cleaned = re.sub(r"[^0-9.\-]", "", text or "")
    if not cleaned or cleaned in {"-", "."}:
        raise ValueError(f"not a currency amount: {text!r}")
    value = float(cleaned)
    return int(value) if value.is_integer() else value


class Cart:
    """Ordered cart with at most one line per product id."""

    def __init__(self, items: Optional[Iterable[CartItem]] = None):
        self._items: List[CartItem] = []
        for item in items or []:
            self.add(item)

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, product_id: str) -> bool:
        return any(item.id == product_id for item in self._items)

    def add(self, product: Product) -> bool:
        """Add a snapshot of the product. Sold or already-present products are ignored."""
        if product.sold or self.contains(product.id):
            return False
        self._items.append(CartItem.from_product(product))
        return True

    def remove(self, product_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != product_id]
        return len(self._items) != before

    def clear(self) -> None:
        self._items = []

    def totals(self) -> OrderTotals:
        return compute_order_totals(self._items)

    def find_unavailable(self, products: Sequence[Product]) -> List[CartItem]:
        """Cart lines that the latest catalog reports as sold or no longer lists."""
        latest = {p.id: p for p in products}
        out = []
        for item in self._items:
            current = latest.get(item.id)
            if current is None or current.sold:
                out.append(item)
        return out


async def load_cart(storage: KeyValueStorage) -> Cart:
    data = await read_json(storage, CART_STORAGE_KEY)
    if not isinstance(data, list):
        return Cart()
    items: List[CartItem] = []
    for entry in data:
        try:
            items.append(CartItem.model_validate(entry))
        except ValidationError:
            logger.warning("cart.restore.item_skipped", extra={"item_id": (entry or {}).get("id") if isinstance(entry, dict) else None})
    return Cart(items)


async def save_cart(storage: KeyValueStorage, cart: Cart) -> bool:
    return await write_json(
        storage,
        CART_STORAGE_KEY,
        [item.model_dump(mode="json", by_alias=True) for item in cart.items],
    )


# ---------- Order messages ----------


def compose_items_list(items: Sequence[Product]) -> str:
    return "\n\n".join(
        f"- Product: {item.name}\n"
        f"  ID: {item.id}\n"
        f"  Size: {item.size}\n"
        f"  Category: {item.category}\n"
        f"  Price: {format_inr(item.price)}"
        for item in items
    )


def _shipping_block(title: str, customer: CustomerDetails) -> str:
    return (
        f"\n\n{title}\n"
        f"Name: {customer.name}\n"
        f"Phone: {customer.phone}\n"
        f"Address: {customer.address}, {customer.city}, {customer.state} - {customer.pincode}"
    )


def _pricing_block(totals: OrderTotals, total_label: str) -> str:
    text = f"\n\nSubtotal: {format_inr(totals.subtotal)}"
    if totals.has_discount:
        text += f"\nDiscount (20% OFF): -{format_inr(totals.discount)} 🎉"
    text += f"\n{total_label} {format_inr(totals.total)}"
    return text


def compose_whatsapp_text(customer: CustomerDetails, items: Sequence[Product]) -> str:
    totals = compute_order_totals(items)
    return (
        "Hello Thrift by Musk! 👋 I'd like to place an order for the following items:\n\n"
        "*ORDER SUMMARY*\n\n"
        + compose_items_list(items)
        + _shipping_block("*MY SHIPPING DETAILS*", customer)
        + _pricing_block(totals, "*Total:*")
        + "\n\nPlease confirm my order and let me know the next steps for payment. Thank you! ✨"
    )


def encode_uri_component(text: str) -> str:
    return quote(text, safe="!~*'()")


def compose_whatsapp_message(customer: CustomerDetails, items: Sequence[Product]) -> str:
    """URL-encoded message body for a wa.me deep link."""
    return encode_uri_component(compose_whatsapp_text(customer, items))


def whatsapp_link(customer: CustomerDetails, items: Sequence[Product], number: Optional[str] = None) -> str:
    number = number or get_storefront_settings().whatsapp_number
    return f"https://wa.me/{number}?text={compose_whatsapp_message(customer, items)}"


def compose_instagram_message(
    customer: CustomerDetails,
    items: Sequence[Product],
    handle: Optional[str] = None,
) -> Tuple[str, str]:
    """Returns (dm_link, clipboard_body)."""
    totals = compute_order_totals(items)
    body = (
        "Hello! 👋 I'd love to order these treasures:\n\n"
        "ORDER SUMMARY\n\n"
        + compose_items_list(items)
        + _shipping_block("MY SHIPPING DETAILS", customer)
        + _pricing_block(totals, "Final Total:")
        + "\n\nPlease let me know the next steps for payment. Can't wait! ✨"
    )
    handle = handle or get_storefront_settings().instagram_handle
    return f"https://ig.me/m/{handle}", body
