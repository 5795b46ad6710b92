"""
Tests for the event bus and the offer event factories.
"""

import pytest

from catalog.models import Offer
from pricing.engine import ProductUpdate
from pricing.event_bus import Event, EventBus, get_event_bus, reset_event_bus
from pricing.events import EventTypes, offer_created, offer_updated, product_price_changed


class TestEvent:
    """Tests for Event class."""

    def test_create_event(self):
        event = Event(event_type="OfferCreated", source="test", payload={"offer_id": "o1"})

        assert event.event_id is not None
        assert event.timestamp.tzinfo is not None
        assert "OfferCreated" in str(event)

    def test_event_ids_are_unique(self):
        assert Event("T", {}, "s").event_id != Event("T", {}, "s").event_id


class TestEventBus:
    """Tests for EventBus pub/sub functionality."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_subscribe_and_publish(self, bus: EventBus):
        received = []
        bus.subscribe("OfferCreated", received.append)

        count = bus.publish(Event("OfferCreated", {"offer_id": "o1"}, "test"))

        assert count == 1
        assert received[0].payload["offer_id"] == "o1"

    def test_type_routing(self, bus: EventBus):
        received = []
        bus.subscribe("OfferDeleted", received.append)

        bus.publish(Event("OfferCreated", {}, "test"))

        assert received == []

    def test_subscribe_all(self, bus: EventBus):
        received = []
        bus.subscribe_all(received.append)

        bus.publish(Event("OfferCreated", {}, "test"))
        bus.publish(Event("ProductPriceChanged", {}, "test"))

        assert [e.event_type for e in received] == ["OfferCreated", "ProductPriceChanged"]

    def test_unsubscribe(self, bus: EventBus):
        received = []
        bus.subscribe("OfferCreated", received.append)

        assert bus.unsubscribe("OfferCreated", received.append) is True
        assert bus.unsubscribe("OfferCreated", received.append) is False
        bus.publish(Event("OfferCreated", {}, "test"))
        assert received == []

    def test_failing_handler_does_not_stop_others(self, bus: EventBus, caplog):
        received = []

        def broken(event):
            raise RuntimeError("indexer offline")

        bus.subscribe("OfferCreated", broken)
        bus.subscribe("OfferCreated", received.append)

        assert bus.publish(Event("OfferCreated", {}, "test")) == 2
        assert len(received) == 1
        assert "indexer offline" in caplog.text

    def test_event_log(self, bus: EventBus):
        bus.publish(Event("OfferCreated", {}, "test"))
        bus.publish(Event("OfferDeleted", {}, "test"))

        assert len(bus.get_event_log()) == 2
        assert len(bus.get_event_log("OfferDeleted")) == 1

        bus.clear_event_log()
        assert bus.get_event_log() == []

    def test_event_log_can_be_disabled(self, bus: EventBus):
        bus.set_logging(False)
        bus.publish(Event("OfferCreated", {}, "test"))

        assert bus.get_event_log() == []

    def test_reset_default_bus(self):
        first = get_event_bus()
        second = reset_event_bus()

        assert second is not first
        assert get_event_bus() is second


class TestEventFactories:
    """Tests for the offer event payloads."""

    @pytest.fixture
    def offer(self, now) -> Offer:
        return Offer(
            id="offer-1",
            title="Factory Test",
            discount=20,
            start_date=now,
            end_date=now.replace(year=2026),
            products=["prod-001"],
            price_types=["retailPrice", "wholesalePrice"],
        )

    def test_offer_created(self, offer):
        event = offer_created(offer, products_updated=1)

        assert event.event_type == EventTypes.OFFER_CREATED
        assert event.source == "offer-lifecycle"
        assert event.payload == {
            "offer_id": "offer-1",
            "discount": 20,
            "price_types": ["retailPrice", "wholesalePrice"],
            "products": ["prod-001"],
            "active": True,
            "products_updated": 1,
        }

    def test_offer_updated(self, offer):
        event = offer_updated(offer, ["discount"], products_updated=0)

        assert event.payload["changed_fields"] == ["discount"]

    def test_product_price_changed(self):
        update = ProductUpdate("prod-001", {"retail_price": 80.0}, {"retail_price": 100.0})

        event = product_price_changed(update, "offer-1")

        assert event.event_type == EventTypes.PRODUCT_PRICE_CHANGED
        assert event.payload == {
            "product_id": "prod-001",
            "offer_id": "offer-1",
            "previous": {"retail_price": 100.0},
            "current": {"retail_price": 80.0},
        }
