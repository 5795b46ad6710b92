"""
Offer-to-product price synchronization.

This package keeps product prices consistent with offer state:
- PricingEngine computes the product writes for apply/restore/reconcile
- OfferLifecycleController runs the engine for create, update, delete and sweeps
- ExpirationScheduler drives the sweeps on a timer
- EventBus carries change notifications to downstream consumers
"""

from pricing.engine import PricingEngine, PriceChangeSet, ProductUpdate, discounted_price
from pricing.event_bus import Event, EventBus, get_event_bus, reset_event_bus
from pricing.lifecycle import OfferLifecycleController, SweepResult
from pricing.scheduler import ExpirationScheduler, TickResult
from pricing.config import PricingConfig

__all__ = [
    "PricingEngine",
    "PriceChangeSet",
    "ProductUpdate",
    "discounted_price",
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    "OfferLifecycleController",
    "SweepResult",
    "ExpirationScheduler",
    "TickResult",
    "PricingConfig",
]
