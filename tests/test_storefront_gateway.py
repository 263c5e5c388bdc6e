from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import SHEET_URL, sheet_csv, sheet_row
from db.storage import MemoryStorage
from routes import storefront_gateway
from services.storefront import Storefront

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
ORDER_ENDPOINT = "https://script.example.com/macros/s/abc/exec"
OVERRIDE_URL = "https://other.example.com/override.csv"

CUSTOMER = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Pune",
    "state": "Maharashtra",
    "pincode": "411001",
}


class FakeUpstream:
    def __init__(self):
        self.sheet = sheet_csv(
            sheet_row("p1", 300, category="Jackets"),
            sheet_row("p2", 600, category="Jackets"),
            sheet_row("p3", "abc"),
        )
        self.sheet_status = 200
        self.order_response = httpx.Response(200, json={"result": "success"})
        self.orders = []
        self.sheets = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(ORDER_ENDPOINT):
            self.orders.append(request.content)
            return self.order_response
        body = self.sheets.get(str(request.url), self.sheet)
        return httpx.Response(self.sheet_status, text=body, headers={"content-type": "text/csv"})


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def storefront(upstream):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    return Storefront(MemoryStorage(), client=client, clock=lambda: NOW)


@pytest.fixture
def api(storefront):
    app = FastAPI()
    app.include_router(storefront_gateway.router)
    app.state.storefront = storefront
    with TestClient(app) as client:
        yield client


def invoke(api, operation, payload=None):
    return api.post("/storefront/v1/invoke", json={"operation": operation, "payload": payload or {}})


def test_find_products_drops_bad_rows(api):
    resp = invoke(api, "find_products", {"filters": {"sort": "Price: High to Low"}})
    assert resp.status_code == 200
    data = resp.json()
    assert [p["id"] for p in data["products"]] == ["p2", "p1"]
    assert data["fresh_items"] == []
    assert data["has_more"] is False
    assert data["metadata"]["status"] == "success"
    assert data["facets"]["categories"] == ["Jackets"]


def test_find_products_price_range(api):
    resp = invoke(api, "find_products", {"price_range": "Under ₹1000", "filters": {"search": "item p2"}})
    assert [p["id"] for p in resp.json()["products"]] == ["p2"]

    bad = invoke(api, "find_products", {"price_range": "Cheap"})
    assert bad.status_code == 400


def test_cart_to_order_summary_end_to_end(api, storefront):
    assert invoke(api, "add_to_cart", {"product_id": "p1"}).json()["added"] is True
    assert invoke(api, "add_to_cart", {"product_id": "p2"}).json()["added"] is True
    again = invoke(api, "add_to_cart", {"product_id": "p2"}).json()
    assert again["added"] is False
    assert len(again["items"]) == 2

    summary = invoke(api, "get_order_summary").json()
    assert summary["totals"]["subtotal"] == 900
    assert summary["totals"]["discount"] == 180
    assert summary["totals"]["total"] == 720
    assert summary["totals"]["formatted_total"] == "₹720"
    assert "ID: p1" in summary["items_list"]


def test_add_unknown_product_is_404(api):
    assert invoke(api, "add_to_cart", {"product_id": "nope"}).status_code == 404


def test_submit_order_success_clears_cart(api, upstream, monkeypatch):
    monkeypatch.setenv("STOREFRONT_ORDER_ENDPOINT_URL", ORDER_ENDPOINT)
    invoke(api, "add_to_cart", {"product_id": "p1"})

    resp = invoke(api, "submit_order", {"customer": CUSTOMER})
    assert resp.status_code == 200
    assert resp.json()["cart"]["items"] == []
    assert len(upstream.orders) == 1


def test_submit_order_failure_offers_manual_channels(api, upstream, monkeypatch):
    monkeypatch.setenv("STOREFRONT_ORDER_ENDPOINT_URL", ORDER_ENDPOINT)
    upstream.order_response = httpx.Response(200, json={"result": "error"})
    invoke(api, "add_to_cart", {"product_id": "p1"})

    resp = invoke(api, "submit_order", {"customer": CUSTOMER})
    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["fallback"]["whatsapp"]["link"].startswith("https://wa.me/")
    assert len(invoke(api, "get_cart").json()["items"]) == 1


def test_submit_order_rejects_items_sold_since_added(api, storefront, upstream, monkeypatch):
    monkeypatch.setenv("STOREFRONT_ORDER_ENDPOINT_URL", ORDER_ENDPOINT)
    invoke(api, "add_to_cart", {"product_id": "p1"})

    upstream.sheet = sheet_csv(sheet_row("p1", 300, sold="TRUE"), sheet_row("p2", 600))
    # Past the cache TTL so the refetch reaches the sheet.
    storefront.provider().clock = lambda: NOW + timedelta(hours=1)
    invoke(api, "refetch_products")
    assert invoke(api, "get_cart").json()["unavailable_ids"] == ["p1"]

    resp = invoke(api, "submit_order", {"customer": CUSTOMER})
    assert resp.status_code == 409
    assert resp.json()["detail"]["unavailable_ids"] == ["p1"]
    assert upstream.orders == []


def test_submit_order_invalid_customer_is_422(api):
    invoke(api, "add_to_cart", {"product_id": "p1"})
    resp = invoke(api, "submit_order", {"customer": {**CUSTOMER, "pincode": " "}})
    assert resp.status_code == 422


def test_whatsapp_handoff_clears_cart(api):
    invoke(api, "add_to_cart", {"product_id": "p1"})
    resp = invoke(api, "confirm_handoff", {"channel": "whatsapp", "customer": CUSTOMER})
    assert resp.status_code == 200
    assert resp.json()["link"].startswith("https://wa.me/919760427922?text=")
    assert invoke(api, "get_cart").json()["items"] == []


def test_compose_messages_requires_items(api):
    assert invoke(api, "compose_order_messages", {"customer": CUSTOMER}).status_code == 400
    invoke(api, "add_to_cart", {"product_id": "p2"})
    channels = invoke(api, "compose_order_messages", {"customer": CUSTOMER}).json()["channels"]
    assert channels["instagram"]["link"] == "https://ig.me/m/thriftbymusk"
    assert "Final Total: ₹480" in channels["instagram"]["body"]


def test_detail_records_recently_viewed(api):
    detail = invoke(api, "get_product_detail", {"product_id": "p1"}).json()
    assert detail["product"]["id"] == "p1"
    assert [p["id"] for p in detail["related"]] == ["p2"]

    invoke(api, "get_product_detail", {"product_id": "p2"})
    recent = invoke(api, "list_recently_viewed").json()
    assert [p["id"] for p in recent["products"]] == ["p2", "p1"]


def test_saved_items_and_preferences(api):
    assert invoke(api, "save_item", {"product_id": "p2"}).json()["saved_ids"] == ["p2"]
    assert [p["id"] for p in invoke(api, "list_saved").json()["products"]] == ["p2"]
    assert invoke(api, "unsave_item", {"product_id": "p2"}).json()["changed"] is True

    assert invoke(api, "cycle_theme").json()["theme"] == "dark"
    assert invoke(api, "dismiss_banner").json()["dismissed"] is True
    status = api.get("/storefront/v1/status").json()
    assert status["theme"] == "dark"
    assert status["sale_banner_dismissed"] is True


def test_sheet_failure_without_cache_is_502(api, upstream):
    upstream.sheet_status = 500
    resp = invoke(api, "find_products")
    assert resp.status_code == 502


def test_empty_override_sheet_is_422(api, upstream):
    upstream.sheet = sheet_csv()
    resp = invoke(api, "find_products", {"csv_url": "https://other.example.com/x.csv"})
    assert resp.status_code == 422


def test_invalid_override_url_is_400(api):
    resp = invoke(api, "find_products", {"csv_url": "not-a-url"})
    assert resp.status_code == 400


def test_malformed_override_url_stays_400(api, storefront):
    for _ in range(2):
        resp = invoke(api, "find_products", {"csv_url": "http://[::1/x.csv"})
        assert resp.status_code == 400
    # Rejected before any fetch cycle starts.
    assert storefront.provider("http://[::1/x.csv").status.value == "idle"


def test_override_cart_checks_against_override_sheet(api, upstream, monkeypatch):
    monkeypatch.setenv("STOREFRONT_ORDER_ENDPOINT_URL", ORDER_ENDPOINT)
    upstream.sheets[OVERRIDE_URL] = sheet_csv(sheet_row("o1", 700))

    assert invoke(api, "find_products").status_code == 200
    assert invoke(api, "find_products", {"csv_url": OVERRIDE_URL}).status_code == 200
    assert invoke(api, "add_to_cart", {"product_id": "o1", "csv_url": OVERRIDE_URL}).json()["added"] is True

    cart = invoke(api, "get_cart", {"csv_url": OVERRIDE_URL}).json()
    assert cart["unavailable_ids"] == []

    resp = invoke(api, "submit_order", {"customer": CUSTOMER, "csv_url": OVERRIDE_URL})
    assert resp.status_code == 200
    assert len(upstream.orders) == 1
    assert resp.json()["cart"]["items"] == []


def test_unknown_operation(api):
    resp = invoke(api, "launch_rocket")
    assert resp.status_code == 400
    assert "Unsupported operation" in resp.json()["detail"]


@pytest.mark.skipif(not storefront_gateway.DEV_MODE, reason="dev endpoint disabled in production")
def test_dev_normalize_report(api, monkeypatch, upstream):
    captured = {}

    async def fake_load(csv_url, client=None):
        from services.csv_source import parse_csv
        from services.product_normalizer import normalize_rows

        captured["url"] = csv_url
        return normalize_rows(parse_csv(upstream.sheet))

    monkeypatch.setattr(storefront_gateway, "load_products_from_source", fake_load)
    report = api.get("/storefront/v1/dev/normalize-report").json()
    assert captured["url"] == SHEET_URL
    assert report["product_count"] == 2
    assert report["dropped_count"] == 1
