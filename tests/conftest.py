"""
Shared pytest fixtures for the offer pricing tests.

These fixtures provide consistent test data and reset state between tests.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from catalog.data_store import DataStore
from pricing.event_bus import EventBus
from pricing.lifecycle import OfferLifecycleController


class FakeClock:
    """Settable clock so tests can move time across offer windows."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def data_dir() -> Path:
    """Path to the test data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def data_store(data_dir: Path) -> DataStore:
    """
    Fresh DataStore instance for each test.

    Uses the real JSON fixtures but creates a new instance
    so tests don't interfere with each other.
    """
    return DataStore(data_dir=data_dir)


@pytest.fixture
def now() -> datetime:
    """The instant every test runs at unless it moves the clock."""
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now: datetime) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def event_bus() -> EventBus:
    """Fresh EventBus for each test."""
    return EventBus()


@pytest.fixture
def controller(data_store: DataStore, event_bus: EventBus, clock: FakeClock) -> OfferLifecycleController:
    """Lifecycle controller wired to the fresh store, bus and clock."""
    return OfferLifecycleController(data_store=data_store, event_bus=event_bus, clock=clock)


@pytest.fixture
def offer_payload(now: datetime):
    """
    Factory for offer creation payloads (camelCase, as the API receives them).

    Defaults to a 20% retail offer on the router that started yesterday
    and runs for thirty days.
    """
    def make(**overrides):
        payload = {
            "title": "Summer Sale",
            "description": "Test offer",
            "discount": 20,
            "startDate": (now - timedelta(days=1)).isoformat(),
            "endDate": (now + timedelta(days=30)).isoformat(),
            "products": ["prod-001"],
            "priceTypes": ["retailPrice"],
        }
        payload.update(overrides)
        return payload

    return make


# =============================================================================
# Product Fixtures
# =============================================================================

@pytest.fixture
def router_product_id() -> str:
    """Wireless Router X500: retail 100, wholesale 80, no offer."""
    return "prod-001"


@pytest.fixture
def extender_product_id() -> str:
    """Mesh Wi-Fi Extender: retail 60, wholesale 45, no offer."""
    return "prod-002"


@pytest.fixture
def keyboard_product_id() -> str:
    """Mechanical Keyboard Elite: retail 149.99, wholesale 110, no offer."""
    return "prod-003"


@pytest.fixture
def dock_product_id() -> str:
    """USB-C Docking Station: retail 90 under offer-spring-dock (original 100)."""
    return "prod-004"


@pytest.fixture
def headset_product_id() -> str:
    """Noise Cancelling Headset: originals default to the live prices."""
    return "prod-005"


@pytest.fixture
def free_product_id() -> str:
    """Cable Organizer Kit: priced 0, so no discount can lower it."""
    return "prod-006"


# =============================================================================
# Offer Fixtures
# =============================================================================

@pytest.fixture
def spring_offer_id() -> str:
    """Effective 10% retail offer holding the docking station."""
    return "offer-spring-dock"


@pytest.fixture
def winter_offer_id() -> str:
    """Deactivated, long expired offer on the headset."""
    return "offer-winter-clearance"
