"""
Storefront Gateway

Operation-style API the client-rendered shop (or an agent) calls for catalog,
cart and checkout work.

Currently supports:
- find_products            (filtered/sorted/paginated catalog view + facets)
- get_product_detail       (records recently viewed, returns related items)
- refetch_products
- get_cart / add_to_cart / remove_from_cart / clear_cart
- get_order_summary / compose_order_messages
- submit_order             (order automation endpoint, manual fallback on failure)
- confirm_handoff          (clears the cart once a manual channel was used)
- save_item / unsave_item / list_saved / list_recently_viewed
- cycle_theme / dismiss_banner

Path: POST /storefront/v1/invoke
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError

from models.product import CustomerDetails, Product
from services import preferences
from services.cart_service import compose_items_list, compose_instagram_message, compose_whatsapp_message, whatsapp_link
from services.catalog_service import (
    PRICE_RANGES,
    CatalogFilters,
    active_filter_count,
    catalog_facets,
    derive_catalog_view,
    find_product,
    is_fresh,
    related_products,
)
from services.csv_source import resolve_csv_url
from services.media_links import format_drive_link
from services.order_service import SUBMISSION_FALLBACK_MESSAGE
from services.product_provider import ProductProvider, ProviderStatus
from services.product_service import load_products_from_source
from services.storefront import Storefront
from services.storefront_errors import ConfigurationError, FetchError, StorefrontError, SubmissionError

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/storefront/v1", tags=["Storefront"])
DEV_MODE = os.getenv("APP_ENV", "dev") != "production"


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


class FindProductsPayload(BaseModel):
    filters: CatalogFilters = Field(default_factory=CatalogFilters)
    price_range: Optional[str] = Field(None, description="Preset label, overrides price_min/price_max")
    csv_url: Optional[str] = Field(None, description="Per-session product sheet override")


class ProductRefPayload(BaseModel):
    product_id: str
    csv_url: Optional[str] = None


class SourcePayload(BaseModel):
    csv_url: Optional[str] = None


class CustomerPayload(BaseModel):
    customer: CustomerDetails
    csv_url: Optional[str] = Field(None, description="Sheet the cart was filled from")


class HandoffPayload(BaseModel):
    channel: str = Field(..., description="whatsapp | instagram")
    customer: Optional[CustomerDetails] = None


class BannerPayload(BaseModel):
    name: str = preferences.SALE_BANNER
    version: int = preferences.SALE_BANNER_VERSION


class StorefrontRequest(BaseModel):
    operation: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _product_to_shop_dict(p: Product, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Map a Product to the client contract (camelCase, plus embeddable media URLs).
    """
    now = now or datetime.now(timezone.utc)
    base = p.model_dump(mode="json", by_alias=True)
    base["imageUrl"] = format_drive_link(p.image_urls[0], "image", width=600) if p.image_urls else None
    base["embedImageUrls"] = [format_drive_link(u, "image") for u in p.image_urls]
    base["videoEmbedUrl"] = format_drive_link(p.video_url, "video") if p.video_url else None
    base["isLive"] = p.is_live(now)
    base["isFreshDrop"] = p.is_live(now) and is_fresh(p, now)
    return base


def _raise_for_provider(provider: ProductProvider) -> None:
    """Surface hard errors only; a stale fallback still renders."""
    if provider.status != ProviderStatus.ERROR or provider.products:
        return
    failure = provider.failure
    if isinstance(failure, ConfigurationError):
        status = 422 if provider.is_override else 500
        raise HTTPException(status_code=status, detail=provider.error)
    if isinstance(failure, FetchError):
        raise HTTPException(status_code=502, detail=provider.error)
    raise HTTPException(status_code=502, detail=provider.error or "Failed to load products")


def _provider_metadata(provider: ProductProvider) -> Dict[str, Any]:
    return {
        **provider.snapshot(),
        "fetched_at": datetime.now(timezone.utc).isoformat(),
    }


async def _load_catalog(storefront: Storefront, csv_url: Optional[str]) -> ProductProvider:
    try:
        resolve_csv_url(csv_url)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    provider = await storefront.products_provider(csv_url)
    _raise_for_provider(provider)
    return provider


async def _handle_find_products(payload: FindProductsPayload, storefront: Storefront) -> Dict[str, Any]:
    """
    Contract (simplified):
    - Input: { filters: {...}, price_range?, csv_url? }
    - Output: { fresh_items, products, total_other_count, visible_count, has_more, facets, metadata }
    """
    filters = payload.filters
    if payload.price_range:
        if payload.price_range not in PRICE_RANGES:
            raise HTTPException(status_code=400, detail=f"Unknown price range: {payload.price_range}")
        filters = filters.with_price_range(payload.price_range)

    provider = await _load_catalog(storefront, payload.csv_url)
    now = storefront.now() or datetime.now(timezone.utc)
    view = derive_catalog_view(provider.products, filters, now)

    return {
        "fresh_items": [_product_to_shop_dict(p, now) for p in view.fresh_items],
        "products": [_product_to_shop_dict(p, now) for p in view.paged_other_items],
        "total_other_count": view.total_other_count,
        "visible_count": view.visible_count,
        "has_more": view.has_more,
        "facets": catalog_facets(provider.products, now),
        "active_filter_count": active_filter_count(filters),
        "metadata": _provider_metadata(provider),
    }


async def _handle_get_product_detail(ref: ProductRefPayload, storefront: Storefront) -> Dict[str, Any]:
    provider = await _load_catalog(storefront, ref.csv_url)
    now = storefront.now() or datetime.now(timezone.utc)

    match = find_product(provider.products, ref.product_id)
    if not match:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")

    storefront.recently_viewed.add(match.id)
    await storefront.persist_lists()

    return {
        "product": _product_to_shop_dict(match, now),
        "related": [_product_to_shop_dict(p, now) for p in related_products(match, provider.products, now)],
        "in_cart": storefront.cart.contains(match.id),
        "is_saved": storefront.saved.is_saved(match.id),
        "metadata": _provider_metadata(provider),
    }


async def _handle_refetch_products(payload: SourcePayload, storefront: Storefront) -> Dict[str, Any]:
    provider = storefront.provider(payload.csv_url)
    await provider.refetch()
    return {"metadata": _provider_metadata(provider)}


def _cart_response(storefront: Storefront, products: Optional[List[Product]] = None) -> Dict[str, Any]:
    now = storefront.now()
    unavailable = storefront.cart.find_unavailable(products) if products is not None else []
    return {
        "items": [_product_to_shop_dict(item, now) for item in storefront.cart.items],
        "totals": storefront.cart.totals().as_dict(),
        "unavailable_ids": [item.id for item in unavailable],
    }


def _catalog_products(storefront: Storefront, csv_url: Optional[str] = None) -> Optional[List[Product]]:
    """Latest catalog of the sheet the session shops from; None until it has loaded."""
    provider = storefront.provider(csv_url)
    if provider.status in (ProviderStatus.SUCCESS, ProviderStatus.RECOVERABLE_ERROR):
        return provider.products
    return None


async def _handle_add_to_cart(ref: ProductRefPayload, storefront: Storefront) -> Dict[str, Any]:
    provider = await _load_catalog(storefront, ref.csv_url)
    product = find_product(provider.products, ref.product_id)
    if not product:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")

    added = storefront.cart.add(product)
    if added:
        await storefront.persist_cart()
    return {
        **_cart_response(storefront),
        "added": added,
        "notification": f"{product.name} added to bag!" if added else None,
    }


async def _handle_remove_from_cart(ref: ProductRefPayload, storefront: Storefront) -> Dict[str, Any]:
    removed = storefront.cart.remove(ref.product_id)
    if removed:
        await storefront.persist_cart()
    return {**_cart_response(storefront), "removed": removed}


async def _handle_clear_cart(storefront: Storefront) -> Dict[str, Any]:
    storefront.cart.clear()
    await storefront.persist_cart()
    return _cart_response(storefront)


async def _handle_get_order_summary(storefront: Storefront) -> Dict[str, Any]:
    items = storefront.cart.items
    return {
        "items_list": compose_items_list(items),
        "totals": storefront.cart.totals().as_dict(),
        "item_count": len(items),
    }


def _manual_channels(customer: CustomerDetails, storefront: Storefront) -> Dict[str, Any]:
    items = storefront.cart.items
    ig_link, ig_body = compose_instagram_message(customer, items)
    return {
        "whatsapp": {
            "link": whatsapp_link(customer, items),
            "message": compose_whatsapp_message(customer, items),
        },
        "instagram": {"link": ig_link, "body": ig_body},
    }


async def _handle_compose_order_messages(payload: CustomerPayload, storefront: Storefront) -> Dict[str, Any]:
    if not len(storefront.cart):
        raise HTTPException(status_code=400, detail="Cart is empty")
    return {
        "channels": _manual_channels(payload.customer, storefront),
        "totals": storefront.cart.totals().as_dict(),
    }


async def _handle_submit_order(payload: CustomerPayload, storefront: Storefront) -> Dict[str, Any]:
    """
    Submit the cart to the order automation endpoint.

    Before sending, the cart is re-checked against the current catalog;
    items sold since they were added block the submission (409).
    """
    if not len(storefront.cart):
        raise HTTPException(status_code=400, detail="Cart is empty")

    catalog = _catalog_products(storefront, payload.csv_url)
    if catalog is not None:
        unavailable = storefront.cart.find_unavailable(catalog)
        if unavailable:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Some items in your bag are no longer available.",
                    "unavailable_ids": [item.id for item in unavailable],
                },
            )

    channels = _manual_channels(payload.customer, storefront)
    checkout = storefront.checkout()
    try:
        result = await checkout.submit(payload.customer)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "fallback": channels})
    except SubmissionError:
        raise HTTPException(
            status_code=502,
            detail={"message": SUBMISSION_FALLBACK_MESSAGE, "fallback": channels},
        )

    await storefront.persist_cart()
    return {"result": result, "cart": _cart_response(storefront)}


async def _handle_confirm_handoff(payload: HandoffPayload, storefront: Storefront) -> Dict[str, Any]:
    channel = payload.channel.strip().lower()
    checkout = storefront.checkout()
    if channel == "whatsapp":
        if payload.customer is None:
            raise HTTPException(status_code=400, detail="customer is required for whatsapp hand-off")
        if not len(storefront.cart):
            raise HTTPException(status_code=400, detail="Cart is empty")
        link = checkout.confirm_whatsapp(payload.customer)
        await storefront.persist_cart()
        return {
            "link": link,
            "notification": "Thank you! Please send the pre-filled message to confirm.",
        }
    if channel == "instagram":
        checkout.confirm_handoff()
        await storefront.persist_cart()
        return {"notification": "Order details copied! Paste them in your Instagram DM."}
    raise HTTPException(status_code=400, detail=f"Unsupported channel: {payload.channel}")


async def _handle_save_item(ref: ProductRefPayload, storefront: Storefront, save: bool) -> Dict[str, Any]:
    changed = storefront.saved.save_item(ref.product_id) if save else storefront.saved.unsave_item(ref.product_id)
    if changed:
        await storefront.persist_lists()
    return {"changed": changed, "saved_ids": list(storefront.saved.ids)}


async def _handle_list_saved(payload: SourcePayload, storefront: Storefront) -> Dict[str, Any]:
    provider = await _load_catalog(storefront, payload.csv_url)
    now = storefront.now()
    return {"products": [_product_to_shop_dict(p, now) for p in storefront.saved.resolve(provider.products)]}


async def _handle_list_recently_viewed(payload: SourcePayload, storefront: Storefront) -> Dict[str, Any]:
    provider = await _load_catalog(storefront, payload.csv_url)
    now = storefront.now()
    return {
        "products": [_product_to_shop_dict(p, now) for p in storefront.recently_viewed.resolve(provider.products)]
    }


@router.get("/status")
async def storefront_status(storefront: Storefront = Depends(get_storefront)) -> Dict[str, Any]:
    return {
        "provider": storefront.provider().snapshot(),
        "cart_items": len(storefront.cart),
        "theme": (await preferences.get_theme(storefront.storage)).value,
        "sale_banner_dismissed": await preferences.is_banner_dismissed(storefront.storage),
    }


if DEV_MODE:
    @router.get("/dev/normalize-report")
    async def debug_normalize_report(csv_url: Optional[str] = None):
        """
        Dev-only endpoint: fetch the sheet bypassing the cache and report dropped rows.
        """
        try:
            url, _ = resolve_csv_url(csv_url)
            report = await load_products_from_source(url)
        except StorefrontError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return report.as_dict()


@router.post("/invoke")
async def invoke_storefront_operation(
    body: StorefrontRequest,
    storefront: Storefront = Depends(get_storefront),
) -> Dict[str, Any]:
    """
    Unified entrypoint for the shop front end.
    """
    operation = (body.operation or "").strip()
    try:
        if operation == "find_products":
            return await _handle_find_products(FindProductsPayload(**body.payload), storefront)

        if operation == "get_product_detail":
            return await _handle_get_product_detail(ProductRefPayload(**body.payload), storefront)

        if operation == "refetch_products":
            return await _handle_refetch_products(SourcePayload(**body.payload), storefront)

        if operation == "get_cart":
            source = SourcePayload(**body.payload)
            return _cart_response(storefront, _catalog_products(storefront, source.csv_url))

        if operation == "add_to_cart":
            return await _handle_add_to_cart(ProductRefPayload(**body.payload), storefront)

        if operation == "remove_from_cart":
            return await _handle_remove_from_cart(ProductRefPayload(**body.payload), storefront)

        if operation == "clear_cart":
            return await _handle_clear_cart(storefront)

        if operation == "get_order_summary":
            return await _handle_get_order_summary(storefront)

        if operation == "compose_order_messages":
            return await _handle_compose_order_messages(CustomerPayload(**body.payload), storefront)

        if operation == "submit_order":
            return await _handle_submit_order(CustomerPayload(**body.payload), storefront)

        if operation == "confirm_handoff":
            return await _handle_confirm_handoff(HandoffPayload(**body.payload), storefront)

        if operation == "save_item":
            return await _handle_save_item(ProductRefPayload(**body.payload), storefront, save=True)

        if operation == "unsave_item":
            return await _handle_save_item(ProductRefPayload(**body.payload), storefront, save=False)

        if operation == "list_saved":
            return await _handle_list_saved(SourcePayload(**body.payload), storefront)

        if operation == "list_recently_viewed":
            return await _handle_list_recently_viewed(SourcePayload(**body.payload), storefront)

        if operation == "cycle_theme":
            theme = await preferences.cycle_theme(storefront.storage)
            return {"theme": theme.value}

        if operation == "dismiss_banner":
            banner = BannerPayload(**body.payload)
            ok = await preferences.dismiss_banner(storefront.storage, banner.name, banner.version)
            return {"dismissed": ok}
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    raise HTTPException(
        status_code=400,
        detail=f"Unsupported operation: {operation}",
    )
