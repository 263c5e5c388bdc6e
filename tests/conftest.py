from datetime import datetime, timezone

import httpx
import pytest

from models.product import Product

SHEET_URL = "https://sheets.example.com/pub?output=csv"

SHEET_HEADER = "id,name,description,price,imageUrls,videoUrl,category,brand,size,bust,length,condition,sold,isUpcoming,createdAt,dropDate"

STOREFRONT_ENV_KEYS = [
    "STOREFRONT_CSV_URL",
    "STOREFRONT_CSV_PROXY",
    "STOREFRONT_ORDER_ENDPOINT_URL",
    "STOREFRONT_WHATSAPP_NUMBER",
    "STOREFRONT_INSTAGRAM_HANDLE",
    "STOREFRONT_CACHE_TTL_SECONDS",
    "STOREFRONT_HTTP_TIMEOUT_SECONDS",
    "STOREFRONT_DATABASE_URL",
    "APP_ENV",
]


@pytest.fixture(autouse=True)
def storefront_env(monkeypatch):
    for key in STOREFRONT_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("STOREFRONT_CSV_URL", SHEET_URL)


def make_product(pid="p1", price=300, **kw) -> Product:
    data = {
        "id": pid,
        "name": kw.pop("name", f"Item {pid}"),
        "price": price,
        "category": kw.pop("category", "Jackets"),
        "brand": kw.pop("brand", "Levi's"),
        "size": kw.pop("size", "M"),
        "condition": kw.pop("condition", "Good"),
        "created_at": kw.pop("created_at", datetime(2024, 1, 1, tzinfo=timezone.utc)),
    }
    data.update(kw)
    return Product(**data)


def sheet_row(pid, price, **kw) -> str:
    fields = {
        "name": f"Item {pid}",
        "description": "",
        "imageUrls": "",
        "videoUrl": "",
        "category": "Jackets",
        "brand": "Levi's",
        "size": "M",
        "bust": "",
        "length": "",
        "condition": "Good",
        "sold": "FALSE",
        "isUpcoming": "false",
        "createdAt": "2024-01-01T00:00:00Z",
        "dropDate": "",
    }
    fields.update(kw)
    cols = SHEET_HEADER.split(",")
    values = {"id": pid, "price": price, **fields}
    return ",".join(str(values[c]) for c in cols)


def sheet_csv(*rows: str) -> str:
    return "\n".join([SHEET_HEADER, *rows]) + "\n"


class SheetServer:
    """httpx transport double that serves a CSV body and counts requests."""

    def __init__(self, body: str = "", status_code: int = 200, content_type: str = "text/csv"):
        self.body = body
        self.status_code = status_code
        self.content_type = content_type
        self.fail_with = None
        self.calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return httpx.Response(
            self.status_code,
            text=self.body,
            headers={"content-type": self.content_type},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def sheet_server():
    return SheetServer()
