from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from models.product import CustomerDetails, Product
from services.cart_service import (
    Cart,
    compose_instagram_message,
    compute_order_totals,
    whatsapp_link,
)
from services.storefront_config import get_storefront_settings
from services.storefront_errors import ConfigurationError, SubmissionError

logger = logging.getLogger(__name__)

SUBMISSION_FALLBACK_MESSAGE = (
    "An issue occurred while saving your details. "
    "Please use one of the manual order options below to complete your purchase."
)


def build_order_payload(customer: CustomerDetails, items: Sequence[Product]) -> Dict[str, Any]:
    totals = compute_order_totals(items)
    return {
        "customerDetails": customer.model_dump(),
        "cartItems": [item.model_dump(mode="json", by_alias=True) for item in items],
        "orderTotals": {
            "subtotal": totals.subtotal,
            "discount": totals.discount,
            "total": totals.total,
        },
    }


async def submit_order(
    customer: CustomerDetails,
    items: Sequence[Product],
    *,
    endpoint_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    POST the order to the automation endpoint (a spreadsheet web app).

    Success is any 2xx response whose JSON body, if there is one, does not say
    {"result": "error"}. Everything else raises SubmissionError; the caller
    keeps the cart so the customer can retry or order manually.
    """
    settings = get_storefront_settings()
    url = endpoint_url or settings.order_endpoint_url
    if not url:
        raise ConfigurationError("Order automation endpoint is not configured.")
    if not items:
        raise SubmissionError("Cannot submit an empty order.")

    body = build_order_payload(customer, items)
    headers = {"Content-Type": "application/json"}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True) as own_client:
                resp = await own_client.post(url, json=body, headers=headers)
        else:
            resp = await client.post(url, json=body, headers=headers, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise SubmissionError(f"Order endpoint unreachable: {exc.__class__.__name__}") from exc

    if resp.status_code < 200 or resp.status_code >= 300:
        raise SubmissionError(f"Order endpoint returned {resp.status_code}", status_code=resp.status_code)

    try:
        data = resp.json()
    except ValueError:
        # Plain 2xx acknowledgement.
        return {"result": "success"}

    if isinstance(data, dict) and str(data.get("result", "")).lower() == "error":
        raise SubmissionError(
            f"Order endpoint reported an error: {data.get('error') or 'unknown'}",
            status_code=resp.status_code,
        )
    if isinstance(data, dict):
        return {"result": "success", **{k: v for k, v in data.items() if k != "result"}}
    return {"result": "success"}


class OrderCheckout:
    """
    Checkout flow over one cart.

    The cart is cleared only after a confirmed hand-off: automated submission
    succeeded, the WhatsApp message was opened, or the caller confirms the
    Instagram DM was sent.
    """

    def __init__(self, cart: Cart, *, client: Optional[httpx.AsyncClient] = None):
        self.cart = cart
        self.client = client
        self.last_error: Optional[str] = None

    @property
    def automation_enabled(self) -> bool:
        return bool(get_storefront_settings().order_endpoint_url)

    async def submit(self, customer: CustomerDetails) -> Dict[str, Any]:
        self.last_error = None
        try:
            result = await submit_order(customer, self.cart.items, client=self.client)
        except SubmissionError as e:
            self.last_error = SUBMISSION_FALLBACK_MESSAGE
            logger.error(f"[order] submission failed, cart kept for manual fallback: {e}")
            raise
        logger.info("order.submitted", extra={"item_count": len(self.cart), "total": self.cart.totals().total})
        self.cart.clear()
        return result

    def confirm_whatsapp(self, customer: CustomerDetails) -> str:
        link = whatsapp_link(customer, self.cart.items)
        self.cart.clear()
        return link

    def instagram_handoff(self, customer: CustomerDetails) -> Dict[str, str]:
        link, body = compose_instagram_message(customer, self.cart.items)
        return {"link": link, "body": body}

    def confirm_handoff(self) -> None:
        self.cart.clear()
