from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from models.product import EPOCH, Measurements, Product, UpcomingStatus
from services.storefront_errors import ParseError

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_SHEET_DATE_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d",
)
_UPCOMING_VALUES = {s.value for s in UpcomingStatus}


@dataclass
class DroppedRow:
    index: int
    reason: str
    row_id: str = ""


@dataclass
class NormalizationReport:
    products: List[Product] = field(default_factory=list)
    row_count: int = 0
    dropped_rows: List[DroppedRow] = field(default_factory=list)
    hidden_count: int = 0

    @property
    def dropped_count(self) -> int:
        return len(self.dropped_rows)

    def as_dict(self) -> Dict[str, object]:
        return {
            "row_count": self.row_count,
            "product_count": len(self.products),
            "dropped_count": self.dropped_count,
            "hidden_count": self.hidden_count,
            "dropped_rows": [
                {"index": d.index, "id": d.row_id, "reason": d.reason} for d in self.dropped_rows
            ],
        }


def parse_price(raw: Optional[str]) -> Optional[int]:
    """Leading-integer parse: "300" -> 300, "450.50" -> 450, "abc" -> None."""
    m = _LEADING_INT_RE.match(raw or "")
    if not m:
        return None
    return int(m.group(1))


def parse_sheet_date(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 or sheet-style (M/D/YYYY) date. Naive values are taken as UTC."""
    text = (raw or "").strip()
    if not text:
        return None
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _SHEET_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_upcoming(raw: Optional[str]) -> UpcomingStatus:
    value = (raw or "false").strip().lower()
    if value not in _UPCOMING_VALUES:
        return UpcomingStatus.FALSE
    return UpcomingStatus(value)


def _validate_row(row: Dict[str, str]) -> Tuple[Optional[Product], Optional[str]]:
    price = parse_price(row.get("price"))
    if price is None:
        return None, "price is not a number"
    if price < 0:
        return None, "price is negative"

    product_id = (row.get("id") or "").strip()
    if not product_id:
        return None, "id is blank"

    image_urls = [u.strip() for u in (row.get("imageUrls") or "").split(",")]

    product = Product(
        id=product_id,
        name=row.get("name") or "",
        description=row.get("description") or "",
        price=price,
        image_urls=[u for u in image_urls if u],
        video_url=(row.get("videoUrl") or "").strip() or None,
        category=row.get("category") or "",
        brand=row.get("brand") or "",
        size=row.get("size") or "",
        measurements=Measurements(bust=row.get("bust") or "", length=row.get("length") or ""),
        condition=row.get("condition") or "",
        sold=(row.get("sold") or "").strip().upper() == "TRUE",
        is_upcoming=parse_upcoming(row.get("isUpcoming")),
        created_at=parse_sheet_date(row.get("createdAt")) or EPOCH,
        drop_date=parse_sheet_date(row.get("dropDate")),
    )
    return product, None


def map_row_to_product(row: Dict[str, str], index: int = -1) -> Optional[Product]:
    """
    Map one raw CSV row to a Product.

    Returns None for rows that fail a hard check (blank id, non-numeric price)
    or that raise while mapping; the failure is logged, never propagated.
    """
    product, _reason = _map_row(row, index)
    return product


def _map_row(row: Dict[str, str], index: int) -> Tuple[Optional[Product], Optional[str]]:
    try:
        return _validate_row(row)
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        err = ParseError(f"{e.__class__.__name__}: {e}", row_index=index)
        logger.warning(
            "catalog.normalize.row_failed",
            extra={"row_index": err.row_index, "row_id": row.get("id"), "error": str(err)},
        )
        return None, str(err)


def normalize_rows(rows: List[Dict[str, str]]) -> NormalizationReport:
    """Map every row, drop invalid ones, then remove products hidden with isUpcoming=not."""
    report = NormalizationReport(row_count=len(rows))
    for index, row in enumerate(rows):
        product, reason = _map_row(row, index)
        if product is None:
            dropped = DroppedRow(index=index, reason=reason or "invalid row", row_id=(row.get("id") or "").strip())
            report.dropped_rows.append(dropped)
            logger.warning(
                "catalog.normalize.row_dropped",
                extra={"row_index": index, "row_id": dropped.row_id, "reason": dropped.reason},
            )
            continue
        if product.is_upcoming == UpcomingStatus.NOT:
            report.hidden_count += 1
            continue
        report.products.append(product)

    logger.info(
        "catalog.normalize.summary",
        extra={
            "row_count": report.row_count,
            "product_count": len(report.products),
            "dropped_count": report.dropped_count,
            "hidden_count": report.hidden_count,
        },
    )
    return report
