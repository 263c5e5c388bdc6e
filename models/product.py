from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class UpcomingStatus(str, Enum):
    TRUE = "true"
    FALSE = "false"
    # Hidden from every listing.
    NOT = "not"


class Measurements(BaseModel):
    model_config = ConfigDict(frozen=True)

    bust: str = ""
    length: str = ""


class Product(BaseModel):
    """
    One sellable item as published on the product sheet.

    Notes:
    - Field names are snake_case; the sheet/client contract uses camelCase
      aliases (`imageUrls`, `isUpcoming`, ...), accepted on input and emitted
      with `model_dump(by_alias=True)`.
    - Instances are frozen: a fetch cycle replaces the whole list instead of
      updating products in place.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Identity
    id: str = Field(..., min_length=1)

    # Descriptive
    name: str = ""
    description: str = ""
    brand: str = ""
    category: str = ""
    size: str = ""
    condition: str = ""

    # Commercial (smallest currency unit)
    price: int = Field(..., ge=0)

    # Media
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")

    measurements: Measurements = Field(default_factory=Measurements)

    # Status
    sold: bool = False
    is_upcoming: UpcomingStatus = Field(default=UpcomingStatus.FALSE, alias="isUpcoming")

    # Temporal
    created_at: datetime = Field(default=EPOCH, alias="createdAt")
    drop_date: Optional[datetime] = Field(default=None, alias="dropDate")

    @field_validator("created_at", "drop_date")
    @classmethod
    def _ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def effective_date(self) -> datetime:
        return self.drop_date or self.created_at

    def is_live(self, now: datetime) -> bool:
        return self.drop_date is None or self.drop_date <= now


class CartItem(Product):
    """A product captured when it was added to the cart; never re-priced afterwards."""

    @classmethod
    def from_product(cls, product: Product) -> "CartItem":
        return cls.model_validate(product.model_dump())


class CustomerDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)


class CachedProductSnapshot(BaseModel):
    # Milliseconds since the Unix epoch.
    timestamp: int
    products: List[Product] = Field(default_factory=list)
