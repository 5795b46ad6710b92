"""
Pricing engine: computes the product writes that apply, adjust or reverse
an offer's discount.

The engine is pure. It takes an offer (or an offer's before/after state)
and product snapshots, and returns a PriceChangeSet describing every field
that must change. It never touches a store; the lifecycle controller decides
whether to apply the whole batch or discard it.

Core rule:
- A discount is always computed from the stored original price, never from
  the live price of a product already under an offer. Editing an offer's
  discount twice therefore never compounds.

Field ownership:
- A field that becomes controlled by an offer captures its original from the
  live price at that moment.
- A field already controlled by the same offer is recomputed from its
  stored original.
- A field that stops being controlled is restored from its stored original.
  If that original is missing the live price is left alone and an
  IntegrityError is recorded in the change set.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from catalog.errors import ConflictError, IntegrityError, ValidationError
from catalog.models import Offer, PriceType, Product

logger = logging.getLogger("pricing_engine")


def discounted_price(original: float, discount_percent: float) -> float:
    """Apply a percentage discount to a price. The result is not rounded."""
    return original * (1 - discount_percent / 100)


def _claim(offer_id: str) -> dict[str, Any]:
    return {"has_active_offer": True, "active_offer_id": offer_id}


def _release() -> dict[str, Any]:
    return {"has_active_offer": False, "active_offer_id": None}


@dataclass
class ProductUpdate:
    """
    Field-level write for one product.

    Attributes:
        product_id: Product to update
        fields: New values, keyed by Product attribute name
        previous: Values those fields had in the snapshot (used for rollback
                  and change notifications)
    """
    product_id: str
    fields: dict[str, Any]
    previous: dict[str, Any]

    @property
    def changes_price(self) -> bool:
        return any(
            name in self.fields
            for price_type in PriceType
            for name in (price_type.field, price_type.original_field)
        )


@dataclass
class PriceChangeSet:
    """All product writes for one controller operation, plus integrity problems found."""
    updates: list[ProductUpdate] = field(default_factory=list)
    integrity_errors: list[IntegrityError] = field(default_factory=list)

    def add(self, update: Optional[ProductUpdate]) -> None:
        if update is not None:
            self.updates.append(update)

    def merge(self, other: "PriceChangeSet") -> "PriceChangeSet":
        self.updates.extend(other.updates)
        self.integrity_errors.extend(other.integrity_errors)
        return self

    def for_product(self, product_id: str) -> Optional[ProductUpdate]:
        return next((u for u in self.updates if u.product_id == product_id), None)

    @property
    def product_ids(self) -> list[str]:
        return [u.product_id for u in self.updates]

    def __len__(self) -> int:
        return len(self.updates)


class PricingEngine:
    """
    Computes price transitions for products targeted by an offer.

    Example:
        engine = PricingEngine()

        # Offer of 20% off retail on a product priced 100
        changes = engine.compute_apply(offer, [product])
        changes.updates[0].fields
        # {"retail_price": 80.0, "has_active_offer": True, "active_offer_id": "offer-1"}

        # Later, the offer is deleted
        changes = engine.compute_restore(offer, [discounted_product])
        # retail_price back to 100.0, ownership cleared
    """

    # =========================================================================
    # Public operations
    # =========================================================================

    def compute_apply(self, offer: Offer, products: Iterable[Product]) -> PriceChangeSet:
        """
        Discount every targeted product that the offer does not already hold.

        Products already held by this offer are recomputed from their stored
        originals, which yields no change when nothing moved. Raises
        ConflictError if a product belongs to another offer and
        ValidationError if a discount would not reduce a price.
        """
        products = [p for p in products if offer.targets(p.id)]
        self._check_conflicts(offer, products)
        self.validate_discount(offer, products)

        changes = PriceChangeSet()
        for product in products:
            controlled = set(offer.price_types) if product.is_owned_by(offer.id) else set()
            target = _claim(offer.id)
            target.update(self._discount_fields(offer, product, controlled, changes))
            changes.add(self._diff(product, target))

        logger.debug(f"apply {offer.id}: {len(changes)} product updates")
        return changes

    def compute_restore(self, offer: Offer, products: Iterable[Product]) -> PriceChangeSet:
        """
        Reverse an offer's discount on every product it points at.

        Ownership is always cleared. Each price field the offer controls goes
        back to its stored original; a missing original is recorded as an
        IntegrityError and that field is left untouched.
        """
        changes = PriceChangeSet()
        for product in products:
            if product.active_offer_id != offer.id:
                continue
            target = _release()
            target.update(self._restore_fields(offer.id, product, offer.price_types, changes))
            changes.add(self._diff(product, target))

        logger.debug(f"restore {offer.id}: {len(changes)} product updates")
        return changes

    def compute_reconcile(
        self,
        old_offer: Offer,
        new_offer: Offer,
        products: Iterable[Product],
        now: datetime,
    ) -> PriceChangeSet:
        """
        Move products from the state old_offer left them in to the state
        new_offer requires.

        Args:
            old_offer: The offer as currently persisted
            new_offer: The offer after the patch is applied (same id)
            products: Snapshots of every product targeted by either state
            now: Instant used to decide whether new_offer is effective

        Per product:
        - held and still targeted while effective: restore fields the offer
          no longer discounts, recompute retained fields from the stored
          original, claim newly selected fields
        - held but dropped (removed, deactivated, out of window): restore
        - newly targeted while effective: apply (conflict-checked)
        - kept target held by another offer: left alone

        Only added targets are conflict-checked, unless the offer is becoming
        effective, in which case every target is.
        """
        products = list(products)
        effective = new_offer.is_effective(now)
        new_types = set(new_offer.price_types)

        if effective:
            checked = self.conflict_candidates(old_offer, new_offer, now)
            self._check_conflicts(new_offer, [p for p in products if p.id in checked])
            self.validate_discount(new_offer, [
                p for p in products
                if new_offer.targets(p.id) and not p.is_claimed_by_other(new_offer.id)
            ])

        changes = PriceChangeSet()
        for product in products:
            held = product.active_offer_id == old_offer.id
            keep = (
                effective
                and new_offer.targets(product.id)
                and not product.is_claimed_by_other(new_offer.id)
            )

            if held and keep:
                controlled = set(old_offer.price_types) if product.has_active_offer else set()
                target = _claim(new_offer.id)
                target.update(self._restore_fields(
                    old_offer.id, product, controlled - new_types, changes
                ))
                target.update(self._discount_fields(
                    new_offer, product, controlled & new_types, changes
                ))
            elif held:
                target = _release()
                target.update(self._restore_fields(
                    old_offer.id, product, old_offer.price_types, changes
                ))
            elif keep:
                target = _claim(new_offer.id)
                target.update(self._discount_fields(new_offer, product, set(), changes))
            else:
                continue

            changes.add(self._diff(product, target))

        logger.debug(f"reconcile {new_offer.id}: {len(changes)} product updates")
        return changes

    def validate_discount(self, offer: Offer, products: Iterable[Product]) -> None:
        """
        Check that the offer lowers every selected price of every target.

        Raises ValidationError naming the offending products.
        """
        errors = []
        for product in products:
            for price_type in offer.price_types:
                base = self._baseline(offer, product, price_type)
                if base is None:
                    continue
                if discounted_price(base, offer.discount) >= base:
                    errors.append(
                        f"Offer price must be lower than original {price_type.value} "
                        f"for product: {product.name}"
                    )
        if errors:
            raise ValidationError(errors[0], errors)

    @staticmethod
    def conflict_candidates(old_offer: Offer, new_offer: Offer, now: datetime) -> set[str]:
        """
        Target ids that must not be held by another offer after an update.

        Added targets always count. Kept targets only count when the update
        makes the offer effective (draft or deactivated before); otherwise a
        kept target held elsewhere was already skipped and stays that way.
        """
        if new_offer.is_effective(now) and not old_offer.is_effective(now):
            return set(new_offer.products)
        return set(new_offer.products) - set(old_offer.products)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_conflicts(offer: Offer, products: list[Product]) -> None:
        taken = [p for p in products if p.is_claimed_by_other(offer.id)]
        if taken:
            names = ", ".join(p.name for p in taken)
            raise ConflictError(
                f"Some products already have active offers: {names}",
                product_ids=[p.id for p in taken],
            )

    @staticmethod
    def _baseline(offer: Offer, product: Product, price_type: PriceType) -> Optional[float]:
        if product.is_owned_by(offer.id):
            return product.original_price(price_type)
        return product.price(price_type)

    @staticmethod
    def _discount_fields(
        offer: Offer,
        product: Product,
        controlled: set[PriceType],
        changes: PriceChangeSet,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for price_type in offer.price_types:
            if price_type in controlled:
                base = product.original_price(price_type)
                if base is None:
                    changes.integrity_errors.append(
                        IntegrityError(product.id, price_type.original_field, offer.id)
                    )
                    continue
            else:
                base = product.price(price_type)
                fields[price_type.original_field] = base
            fields[price_type.field] = discounted_price(base, offer.discount)
        return fields

    @staticmethod
    def _restore_fields(
        offer_id: str,
        product: Product,
        price_types: Iterable[PriceType],
        changes: PriceChangeSet,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for price_type in price_types:
            original = product.original_price(price_type)
            if original is None:
                changes.integrity_errors.append(
                    IntegrityError(product.id, price_type.original_field, offer_id)
                )
                continue
            fields[price_type.field] = original
        return fields

    @staticmethod
    def _diff(product: Product, target: dict[str, Any]) -> Optional[ProductUpdate]:
        changed = {
            name: value for name, value in target.items()
            if getattr(product, name) != value
        }
        if not changed:
            return None
        return ProductUpdate(
            product_id=product.id,
            fields=changed,
            previous={name: getattr(product, name) for name in changed},
        )
