"""
Catalog records and stores used by the offer price synchronization engine.

This package contains:
- Domain models (Product, Offer, PriceType, OfferState)
- The error taxonomy surfaced by the pricing subsystem
- Data store for JSON-backed products and offers
"""

from catalog.models import (
    Product,
    Offer,
    OfferCreate,
    OfferUpdate,
    OfferState,
    PriceType,
)
from catalog.errors import (
    OfferError,
    ValidationError,
    ConflictError,
    NotFoundError,
    IntegrityError,
    StoreError,
)
from catalog.data_store import DataStore

__all__ = [
    "Product",
    "Offer",
    "OfferCreate",
    "OfferUpdate",
    "OfferState",
    "PriceType",
    "OfferError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "IntegrityError",
    "StoreError",
    "DataStore",
]
