"""
CSV source

Fetches the published product sheet and tokenizes it into header-keyed rows.

The tokenizer is deliberately line-based: fields may be double-quoted and
contain commas (and escaped `""` quotes), but never newlines. Rows whose
field count differs from the header count are dropped rather than repaired.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

import httpx

from services.storefront_config import get_storefront_settings
from services.storefront_errors import ConfigurationError, FetchError

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"\r?\n")
_FIELD_RE = re.compile(
    r'("(?:[^"]|"")*"'  # quoted field, may contain commas
    r'|[^",\r]+'  # bare field
    r"|(?:(?<=,)|^)(?=,)"  # empty field before a comma
    r"|(?<=,)$)"  # empty trailing field
    r"(?=\s*,|\s*$)"
)
_HTML_PREFIXES = ("<!doctype html", "<html")


def resolve_csv_url(override: Optional[str] = None) -> Tuple[str, bool]:
    """Return (csv_url, is_override). An override comes from the `csv_url` query parameter."""
    override = (override or "").strip()
    url = override or get_storefront_settings().csv_url
    if not url:
        raise ConfigurationError("Product sheet CSV URL is not configured.")
    if not url.lower().startswith(("http://", "https://")):
        raise ConfigurationError(f"Product sheet CSV URL must be http(s): {url!r}")
    try:
        httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Product sheet CSV URL is malformed: {url!r}") from exc
    return url, bool(override)


def build_fetch_url(csv_url: str) -> str:
    proxy = get_storefront_settings().csv_proxy
    if not proxy:
        return csv_url
    return f"{proxy}{csv_url}"


def looks_like_html(text: str, content_type: Optional[str] = None) -> bool:
    if content_type and "text/html" in content_type.lower():
        return True
    head = text.lstrip()[:64].lower()
    return head.startswith(_HTML_PREFIXES)


async def fetch_csv_text(csv_url: str, *, client: Optional[httpx.AsyncClient] = None) -> str:
    """GET the sheet as text. Raises FetchError for anything that is not a CSV body."""
    url = build_fetch_url(csv_url)
    timeout = get_storefront_settings().http_timeout_seconds

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                resp = await own_client.get(url)
        else:
            resp = await client.get(url, follow_redirects=True)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Product sheet fetch URL is malformed: {url!r}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(
            f"Could not fetch product data ({exc.__class__.__name__}). "
            "This might be a network issue; please check your connection."
        ) from exc

    if resp.status_code >= 400 or resp.status_code < 200:
        raise FetchError(
            f"Failed to fetch product sheet: {resp.status_code} {resp.reason_phrase}. "
            "Please ensure the sheet is published to the web and the link is correct.",
            status_code=resp.status_code,
        )

    text = resp.text
    if looks_like_html(text, resp.headers.get("content-type")):
        raise FetchError(
            "Product sheet returned an HTML page instead of CSV. "
            "The sheet is probably not published or the link points to a login page.",
            status_code=resp.status_code,
        )
    return text


def _clean_value(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1].replace('""', '"')
    return value.strip()


def parse_csv(text: str) -> List[Dict[str, str]]:
    """
    Tokenize CSV text into header-keyed rows, preserving row order.

    Empty or header-only input yields []. Blank lines are skipped; rows
    that resolve to a different number of fields than the header are dropped.
    """
    if not text or not text.strip():
        return []

    lines = _LINE_SPLIT_RE.split(text.strip())
    if len(lines) < 2:
        return []

    headers = [h.strip().replace('"', "") for h in lines[0].lstrip("\ufeff").split(",")]
    rows: List[Dict[str, str]] = []
    mismatched = 0

    for line in lines[1:]:
        if not line.strip():
            continue
        values = [_clean_value(v) for v in _FIELD_RE.findall(line)]
        if len(values) != len(headers):
            mismatched += 1
            continue
        rows.append(dict(zip(headers, values)))

    if mismatched:
        logger.debug(
            "catalog.csv.rows_dropped",
            extra={"mismatched_count": mismatched, "header_count": len(headers)},
        )
    return rows
