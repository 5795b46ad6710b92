"""
Event definitions for offer lifecycle and price changes.

Events are named in past tense and carry everything a subscriber needs,
so a search indexer reacting to ProductPriceChanged never has to query back.
"""

from typing import Any, Optional

from catalog.models import Offer
from pricing.engine import ProductUpdate
from pricing.event_bus import Event

SOURCE = "offer-lifecycle"


class EventTypes:
    """Constants for event type names."""
    OFFER_CREATED = "OfferCreated"
    OFFER_UPDATED = "OfferUpdated"
    OFFER_DELETED = "OfferDeleted"
    OFFER_EXPIRED = "OfferExpired"
    OFFER_ACTIVATED = "OfferActivated"
    PRODUCT_PRICE_CHANGED = "ProductPriceChanged"


def _offer_payload(offer: Offer) -> dict[str, Any]:
    return {
        "offer_id": offer.id,
        "discount": offer.discount,
        "price_types": [pt.value for pt in offer.price_types],
        "products": list(offer.products),
        "active": offer.active,
    }


def offer_created(offer: Offer, products_updated: int, source: str = SOURCE) -> Event:
    return Event(
        event_type=EventTypes.OFFER_CREATED,
        source=source,
        payload={**_offer_payload(offer), "products_updated": products_updated},
    )


def offer_updated(
    offer: Offer,
    changed_fields: list[str],
    products_updated: int,
    source: str = SOURCE,
) -> Event:
    return Event(
        event_type=EventTypes.OFFER_UPDATED,
        source=source,
        payload={
            **_offer_payload(offer),
            "changed_fields": changed_fields,
            "products_updated": products_updated,
        },
    )


def offer_deleted(offer: Offer, products_updated: int, source: str = SOURCE) -> Event:
    return Event(
        event_type=EventTypes.OFFER_DELETED,
        source=source,
        payload={**_offer_payload(offer), "products_updated": products_updated},
    )


def offer_expired(offer: Offer, products_updated: int, source: str = SOURCE) -> Event:
    """Published when the sweep turns off an offer whose window has ended."""
    return Event(
        event_type=EventTypes.OFFER_EXPIRED,
        source=source,
        payload={**_offer_payload(offer), "products_updated": products_updated},
    )


def offer_activated(offer: Offer, products_updated: int, source: str = SOURCE) -> Event:
    """Published when the sweep applies an offer whose window has started."""
    return Event(
        event_type=EventTypes.OFFER_ACTIVATED,
        source=source,
        payload={**_offer_payload(offer), "products_updated": products_updated},
    )


def product_price_changed(
    update: ProductUpdate,
    offer_id: Optional[str],
    source: str = SOURCE,
) -> Event:
    """
    Published once per product written by an operation.

    previous/current hold only the fields that changed.
    """
    return Event(
        event_type=EventTypes.PRODUCT_PRICE_CHANGED,
        source=source,
        payload={
            "product_id": update.product_id,
            "offer_id": offer_id,
            "previous": dict(update.previous),
            "current": dict(update.fields),
        },
    )
