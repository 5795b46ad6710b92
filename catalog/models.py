"""
Domain models for the catalog pricing subsystem.

These are the records the price synchronization engine reads and writes:
products with mutable price fields, and promotional offers that discount them.

Design decisions:
- Using Pydantic for validation and serialization
- Python attributes are snake_case; persisted/JSON names are camelCase
  (retailPrice, activeOfferId, priceTypes, ...) and either spelling is accepted
- All datetimes are timezone-aware UTC; naive input is treated as UTC
- Models are treated as immutable snapshots; stores hand out copies
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _dedupe(values: list) -> list:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


# =============================================================================
# Enums
# =============================================================================

class PriceType(str, Enum):
    """
    Which price field an offer is allowed to discount.

    Values are the persisted field names of the live price.
    """
    RETAIL = "retailPrice"
    WHOLESALE = "wholesalePrice"

    @property
    def field(self) -> str:
        """Attribute name of the live price on Product."""
        return PRICE_FIELDS[self]

    @property
    def original_field(self) -> str:
        """Attribute name of the stored original price on Product."""
        return ORIGINAL_PRICE_FIELDS[self]


PRICE_FIELDS = {
    PriceType.RETAIL: "retail_price",
    PriceType.WHOLESALE: "wholesale_price",
}

ORIGINAL_PRICE_FIELDS = {
    PriceType.RETAIL: "original_retail_price",
    PriceType.WHOLESALE: "original_wholesale_price",
}


class OfferState(str, Enum):
    """
    Lifecycle state of an offer, derived from its flag and window.

    DRAFT -> EFFECTIVE -> EXPIRED | DEACTIVATED
    DEACTIVATED -> EFFECTIVE again if reactivated inside its window.
    EXPIRED is terminal.
    """
    DRAFT = "draft"               # Active, window not started yet
    EFFECTIVE = "effective"       # Active and inside its window
    DEACTIVATED = "deactivated"   # Switched off before its window ended
    EXPIRED = "expired"           # Window is over


class CatalogModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize using the persisted (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Product
# =============================================================================

class Product(CatalogModel):
    """
    Catalog product with the price fields managed by offers.

    The original_* fields are the restoration baseline. When a product is
    created without them they default to the live prices. An explicit null
    is kept as-is so a missing baseline stays visible to the engine.
    """
    id: str = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Product display name")
    category: Optional[str] = Field(default=None)
    retail_price: float = Field(..., ge=0, description="Current retail price")
    wholesale_price: float = Field(..., ge=0, description="Current wholesale price")
    original_retail_price: Optional[float] = Field(default=None, ge=0)
    original_wholesale_price: Optional[float] = Field(default=None, ge=0)
    has_active_offer: bool = Field(default=False)
    active_offer_id: Optional[str] = Field(default=None)

    @model_validator(mode="before")
    @classmethod
    def _default_original_prices(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for live, original in (
            ("retail_price", "original_retail_price"),
            ("wholesale_price", "original_wholesale_price"),
        ):
            if original in data or to_camel(original) in data:
                continue
            live_value = data.get(live, data.get(to_camel(live)))
            if live_value is not None:
                data[original] = live_value
        return data

    def price(self, price_type: PriceType) -> float:
        return getattr(self, price_type.field)

    def original_price(self, price_type: PriceType) -> Optional[float]:
        return getattr(self, price_type.original_field)

    def is_owned_by(self, offer_id: str) -> bool:
        """True if the offer currently holds a discount on this product."""
        return self.has_active_offer and self.active_offer_id == offer_id

    def is_claimed_by_other(self, offer_id: str) -> bool:
        """True if some other offer holds a discount on this product."""
        return self.has_active_offer and self.active_offer_id != offer_id


# =============================================================================
# Offers
# =============================================================================

class OfferFields(CatalogModel):
    """Validation shared by offer records and offer creation input."""
    title: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(default=None)
    discount: float = Field(..., ge=1, le=99, description="Percentage off")
    start_date: datetime
    end_date: datetime
    products: list[str] = Field(..., min_length=1, description="Target product ids")
    price_types: list[PriceType] = Field(
        default_factory=lambda: [PriceType.RETAIL],
        min_length=1,
        description="Which price fields the offer discounts",
    )
    active: bool = Field(default=True)

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_dates(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("products", "price_types")
    @classmethod
    def _unique(cls, values: list) -> list:
        return _dedupe(values)

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class OfferCreate(OfferFields):
    """Input for creating an offer. The id is optional and generated when absent."""
    id: Optional[str] = Field(default=None)


class OfferUpdate(CatalogModel):
    """
    Partial update for an offer.

    Only fields explicitly set by the caller are applied. Cross-field rules
    (date ordering) are checked on the merged result, not here.
    """
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = None
    discount: Optional[float] = Field(default=None, ge=1, le=99)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    products: Optional[list[str]] = Field(default=None, min_length=1)
    price_types: Optional[list[PriceType]] = Field(default=None, min_length=1)
    active: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually set, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class Offer(OfferFields):
    """
    A promotional offer: a flat percentage off one or both price fields
    of every target product, valid inside [start_date, end_date].
    """
    id: str = Field(default_factory=lambda: f"offer-{uuid4().hex[:12]}")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default=None)

    def is_effective(self, now: datetime) -> bool:
        """Active flag set and now inside the validity window."""
        now = as_utc(now)
        return self.active and self.start_date <= now <= self.end_date

    def state(self, now: datetime) -> OfferState:
        now = as_utc(now)
        if now > self.end_date:
            return OfferState.EXPIRED
        if not self.active:
            return OfferState.DEACTIVATED
        if now < self.start_date:
            return OfferState.DRAFT
        return OfferState.EFFECTIVE

    def targets(self, product_id: str) -> bool:
        return product_id in self.products
