"""
Tests for catalog domain models.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from catalog.models import (
    Offer,
    OfferCreate,
    OfferState,
    OfferUpdate,
    PriceType,
    Product,
)


def make_offer(now: datetime, **overrides) -> Offer:
    fields = {
        "id": "offer-test",
        "title": "Test Offer",
        "discount": 25,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=1),
        "products": ["prod-001"],
    }
    fields.update(overrides)
    return Offer(**fields)


class TestPriceType:
    """Tests for the PriceType enum."""

    def test_values_are_persisted_field_names(self):
        assert PriceType.RETAIL.value == "retailPrice"
        assert PriceType.WHOLESALE.value == "wholesalePrice"

    def test_field_mappings(self):
        """Each price type knows its live and original attribute names."""
        assert PriceType.RETAIL.field == "retail_price"
        assert PriceType.RETAIL.original_field == "original_retail_price"
        assert PriceType.WHOLESALE.field == "wholesale_price"
        assert PriceType.WHOLESALE.original_field == "original_wholesale_price"


class TestProduct:
    """Tests for the Product model."""

    def test_originals_default_to_live_prices(self):
        """A product created without originals uses its live prices as baseline."""
        product = Product(id="p", name="Thing", retail_price=10.0, wholesale_price=6.0)

        assert product.original_retail_price == 10.0
        assert product.original_wholesale_price == 6.0
        assert product.has_active_offer is False
        assert product.active_offer_id is None

    def test_explicit_null_original_is_kept(self):
        """An explicit null original stays null so a restore can detect it."""
        product = Product.model_validate({
            "id": "p",
            "name": "Thing",
            "retailPrice": 10.0,
            "wholesalePrice": 6.0,
            "originalRetailPrice": None,
        })

        assert product.original_retail_price is None
        assert product.original_wholesale_price == 6.0

    def test_accepts_camel_case_and_serializes_to_it(self):
        product = Product.model_validate({
            "id": "p",
            "name": "Thing",
            "retailPrice": 10.0,
            "wholesalePrice": 6.0,
            "hasActiveOffer": True,
            "activeOfferId": "offer-1",
        })

        doc = product.to_document()
        assert doc["retailPrice"] == 10.0
        assert doc["originalWholesalePrice"] == 6.0
        assert doc["hasActiveOffer"] is True
        assert doc["activeOfferId"] == "offer-1"
        assert "retail_price" not in doc

    def test_negative_price_rejected(self):
        with pytest.raises(PydanticValidationError):
            Product(id="p", name="Thing", retail_price=-1.0, wholesale_price=6.0)

    def test_price_accessors(self):
        product = Product(
            id="p",
            name="Thing",
            retail_price=9.0,
            wholesale_price=6.0,
            original_retail_price=10.0,
        )

        assert product.price(PriceType.RETAIL) == 9.0
        assert product.original_price(PriceType.RETAIL) == 10.0
        assert product.price(PriceType.WHOLESALE) == 6.0

    def test_ownership(self):
        """Ownership requires both the flag and a matching offer id."""
        held = Product(
            id="p", name="Thing", retail_price=9.0, wholesale_price=6.0,
            has_active_offer=True, active_offer_id="offer-1",
        )
        stale = Product(
            id="q", name="Other", retail_price=9.0, wholesale_price=6.0,
            has_active_offer=False, active_offer_id="offer-1",
        )

        assert held.is_owned_by("offer-1")
        assert not held.is_owned_by("offer-2")
        assert held.is_claimed_by_other("offer-2")
        assert not held.is_claimed_by_other("offer-1")
        assert not stale.is_owned_by("offer-1")
        assert not stale.is_claimed_by_other("offer-2")


class TestOfferValidation:
    """Tests for offer field validation."""

    def test_defaults(self, now):
        offer = make_offer(now)

        assert offer.price_types == [PriceType.RETAIL]
        assert offer.active is True
        assert offer.id == "offer-test"
        assert offer.created_at is not None

    def test_generated_id(self, now):
        offer = Offer(
            title="Generated",
            discount=10,
            start_date=now,
            end_date=now + timedelta(days=1),
            products=["prod-001"],
        )

        assert offer.id.startswith("offer-")

    def test_end_must_follow_start(self, now):
        with pytest.raises(PydanticValidationError) as exc_info:
            make_offer(now, start_date=now, end_date=now)

        assert "End date must be after start date" in str(exc_info.value)

    @pytest.mark.parametrize("discount", [0, 0.5, 99.5, 100, -10])
    def test_discount_out_of_range(self, now, discount):
        with pytest.raises(PydanticValidationError):
            make_offer(now, discount=discount)

    @pytest.mark.parametrize("discount", [1, 50, 99])
    def test_discount_in_range(self, now, discount):
        assert make_offer(now, discount=discount).discount == discount

    def test_title_length(self, now):
        with pytest.raises(PydanticValidationError):
            make_offer(now, title="ab")
        with pytest.raises(PydanticValidationError):
            make_offer(now, title="x" * 101)

    def test_products_required(self, now):
        with pytest.raises(PydanticValidationError):
            make_offer(now, products=[])

    def test_unknown_price_type_rejected(self, now):
        with pytest.raises(PydanticValidationError):
            make_offer(now, price_types=["costPrice"])

    def test_lists_are_deduplicated(self, now):
        offer = make_offer(
            now,
            products=["prod-001", "prod-002", "prod-001"],
            price_types=["retailPrice", "retailPrice", "wholesalePrice"],
        )

        assert offer.products == ["prod-001", "prod-002"]
        assert offer.price_types == [PriceType.RETAIL, PriceType.WHOLESALE]

    def test_naive_dates_are_utc(self, now):
        offer = make_offer(
            now,
            start_date=datetime(2025, 1, 1),
            end_date=datetime(2025, 2, 1),
        )

        assert offer.start_date == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert offer.end_date.tzinfo is not None

    def test_offer_create_from_camel_case(self):
        request = OfferCreate.model_validate({
            "title": "Camel",
            "discount": 15,
            "startDate": "2025-06-01T00:00:00Z",
            "endDate": "2025-07-01T00:00:00+02:00",
            "products": ["prod-001"],
            "priceTypes": ["wholesalePrice"],
        })

        assert request.id is None
        assert request.price_types == [PriceType.WHOLESALE]
        assert request.end_date == datetime(2025, 6, 30, 22, 0, tzinfo=timezone.utc)


class TestOfferState:
    """Tests for offer state derivation."""

    def test_effective_inside_window(self, now):
        offer = make_offer(now)

        assert offer.is_effective(now)
        assert offer.state(now) == OfferState.EFFECTIVE

    def test_window_bounds_are_inclusive(self, now):
        offer = make_offer(now, start_date=now, end_date=now + timedelta(hours=1))

        assert offer.is_effective(now)
        assert offer.is_effective(now + timedelta(hours=1))

    def test_draft_before_start(self, now):
        offer = make_offer(now, start_date=now + timedelta(days=1), end_date=now + timedelta(days=2))

        assert not offer.is_effective(now)
        assert offer.state(now) == OfferState.DRAFT

    def test_deactivated(self, now):
        offer = make_offer(now, active=False)

        assert not offer.is_effective(now)
        assert offer.state(now) == OfferState.DEACTIVATED

    def test_expired_after_end_regardless_of_flag(self, now):
        later = now + timedelta(days=2)

        assert make_offer(now).state(later) == OfferState.EXPIRED
        assert make_offer(now, active=False).state(later) == OfferState.EXPIRED
        assert not make_offer(now).is_effective(later)

    def test_targets(self, now):
        offer = make_offer(now, products=["prod-001", "prod-002"])

        assert offer.targets("prod-002")
        assert not offer.targets("prod-003")


class TestOfferUpdate:
    """Tests for partial offer updates."""

    def test_changes_only_include_set_fields(self):
        patch = OfferUpdate.model_validate({"discount": 30, "priceTypes": ["wholesalePrice"]})

        assert patch.changes() == {"discount": 30, "price_types": [PriceType.WHOLESALE]}

    def test_empty_patch(self):
        assert OfferUpdate().changes() == {}

    def test_field_rules_still_apply(self):
        with pytest.raises(PydanticValidationError):
            OfferUpdate(discount=150)
        with pytest.raises(PydanticValidationError):
            OfferUpdate(products=[])
