"""
Offer lifecycle controller: runs the pricing engine around every trigger
that can change an offer.

Triggers:
- create_offer / update_offer / delete_offer (called by the API layer)
- expire_sweep / activate_sweep (called by the expiration scheduler)

All of them converge on the same engine calls, so an offer that is deleted,
deactivated or expired leaves its products in exactly the same state.

Ordering within one operation:
1. Take the offer's lock, then every affected product's lock
2. Re-read the offer and product snapshots
3. Compute all product writes (nothing is written yet)
4. Write the products; on failure, roll back the ones already written
5. Write the offer record last; on failure, roll back the product writes
6. Publish change events

Re-running an operation after a crash between steps 4 and 5 is safe:
prices are always recomputed from the stored originals.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from catalog.data_store import DataStore, get_data_store
from catalog.errors import ConflictError, NotFoundError, OfferError, ValidationError
from catalog.models import Offer, OfferCreate, OfferState, OfferUpdate, Product, utc_now
from pricing.engine import PriceChangeSet, PricingEngine, ProductUpdate
from pricing.event_bus import Event, EventBus, get_event_bus
from pricing.events import (
    offer_activated,
    offer_created,
    offer_deleted,
    offer_expired,
    offer_updated,
    product_price_changed,
)
from pricing.locks import KeyedLocks, offer_key, product_keys

logger = logging.getLogger("offer_lifecycle")

T = TypeVar("T")

# Fields that may still be edited once an offer's window is over
EDITABLE_WHEN_EXPIRED = {"title", "description"}


@dataclass
class SweepResult:
    """Outcome of one expire or activate sweep."""
    kind: str
    processed: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    products_updated: int = 0
    skipped_products: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def _union(*groups: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        for item in group:
            seen.setdefault(item, None)
    return list(seen)


def _to_validation_error(error: PydanticValidationError) -> ValidationError:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "offer"
        message = detail.get("msg", "invalid value").removeprefix("Value error, ")
        messages.append(f"{location}: {message}")
    return ValidationError(messages[0] if messages else str(error), messages)


class OfferLifecycleController:
    """
    Orchestrates offers and the product prices they control.

    Example:
        controller = OfferLifecycleController(data_store=store)

        offer = controller.create_offer({
            "title": "Summer Sale",
            "discount": 20,
            "startDate": "2025-06-01T00:00:00Z",
            "endDate": "2025-09-01T00:00:00Z",
            "products": ["prod-001"],
            "priceTypes": ["retailPrice"],
        })
        controller.update_offer(offer.id, {"discount": 50})
        controller.delete_offer(offer.id)
    """

    def __init__(
        self,
        data_store: Optional[DataStore] = None,
        engine: Optional[PricingEngine] = None,
        event_bus: Optional[EventBus] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.data_store = data_store or get_data_store()
        self.engine = engine or PricingEngine()
        self.event_bus = event_bus or get_event_bus()
        self.locks = locks or KeyedLocks()
        self.clock = clock or utc_now

    # =========================================================================
    # Reads
    # =========================================================================

    def get_offer(self, offer_id: str) -> Offer:
        return self._require_offer(offer_id)

    def list_offers(self, active: Optional[bool] = None, current: bool = False) -> list[Offer]:
        """
        List offers.

        Args:
            active: Filter on the active flag
            current: Only offers whose window contains now
        """
        return self.data_store.get_offers(
            active=active,
            current_at=self.clock() if current else None,
        )

    def get_product(self, product_id: str) -> Product:
        product = self.data_store.get_product(product_id)
        if not product:
            raise NotFoundError(f"No product found for id {product_id}")
        return product

    # =========================================================================
    # Create / Update / Delete
    # =========================================================================

    def create_offer(self, data: Union[OfferCreate, dict[str, Any]]) -> Offer:
        """
        Validate and persist a new offer, discounting its targets if it is
        currently effective.

        Raises ValidationError, NotFoundError (unknown target product) or
        ConflictError (a target already has an active offer, or the id is
        taken). Nothing is written unless everything succeeds.
        """
        request = self._parse(OfferCreate, data)
        offer = Offer(**request.model_dump(exclude_none=True))

        with self.locks.hold(offer_key(offer.id)):
            if self.data_store.get_offer(offer.id):
                raise ConflictError(f"Offer already exists: {offer.id}")

            with self.locks.hold(*product_keys(offer.products)):
                products = self._load_targets(offer.products)
                taken = [p for p in products if p.has_active_offer]
                if taken:
                    raise ConflictError(
                        "Some products already have active offers: "
                        + ", ".join(p.name for p in taken),
                        product_ids=[p.id for p in taken],
                    )
                if offer.active:
                    self.engine.validate_discount(offer, products)

                if offer.is_effective(self.clock()):
                    changes = self.engine.compute_apply(offer, products)
                else:
                    changes = PriceChangeSet()

                created = self._commit(changes, lambda: self.data_store.create_offer(offer))

        logger.info(
            f"Created offer {created.id} ({created.title}): {created.discount}% off "
            f"{[pt.value for pt in created.price_types]} on {len(created.products)} products, "
            f"{len(changes)} updated"
        )
        self._finish(created.id, changes, offer_created(created, len(changes)))
        return created

    def update_offer(self, offer_id: str, patch: Union[OfferUpdate, dict[str, Any]]) -> Offer:
        """
        Apply a partial update and reconcile every affected product.

        Removed targets are restored; added targets are conflict-checked and
        discounted if the offer is effective; discount or price type changes
        are recomputed from stored originals; deactivation restores everything.
        The offer record is written after the products.
        """
        requested = self._parse(OfferUpdate, patch).changes()

        with self.locks.hold(offer_key(offer_id)):
            current = self._require_offer(offer_id)
            now = self.clock()
            self._guard_expired(current, requested, now)
            updated = self._merge(current, requested)

            owned = [p.id for p in self.data_store.find_products_by_offer(offer_id)]
            affected = _union(current.products, updated.products, owned)

            with self.locks.hold(*product_keys(affected)):
                targets = self._load_targets(updated.products)
                snapshots = self.data_store.get_products(affected)

                checked = self.engine.conflict_candidates(current, updated, now)
                taken = [p for p in targets if p.id in checked and p.is_claimed_by_other(offer_id)]
                if taken:
                    raise ConflictError(
                        "Some products already have active offers: "
                        + ", ".join(p.name for p in taken),
                        product_ids=[p.id for p in taken],
                    )
                if updated.active:
                    self.engine.validate_discount(
                        updated, [p for p in targets if not p.is_claimed_by_other(offer_id)]
                    )

                changes = self.engine.compute_reconcile(current, updated, snapshots, now)
                fields = {name: getattr(updated, name) for name in requested}
                persisted = self._commit(
                    changes, lambda: self._persist_offer_fields(offer_id, fields)
                )

        logger.info(
            f"Updated offer {offer_id} ({sorted(requested)}): "
            f"{current.state(now).value} -> {persisted.state(now).value}, {len(changes)} products updated"
        )
        self._finish(offer_id, changes, offer_updated(persisted, sorted(requested), len(changes)))
        return persisted

    def delete_offer(self, offer_id: str) -> None:
        """
        Restore every product the offer controls, then remove the offer.

        Restoration runs even if the offer was never effective; it is a
        no-op in that case.
        """
        with self.locks.hold(offer_key(offer_id)):
            offer = self._require_offer(offer_id)
            owned = [p.id for p in self.data_store.find_products_by_offer(offer_id)]
            affected = _union(offer.products, owned)

            with self.locks.hold(*product_keys(affected)):
                snapshots = self.data_store.get_products(affected)
                changes = self.engine.compute_restore(offer, snapshots)
                self._commit(changes, lambda: self._persist_delete(offer_id))

        logger.info(f"Deleted offer {offer_id}: {len(changes)} products restored")
        self._finish(offer_id, changes, offer_deleted(offer, len(changes)))

    # =========================================================================
    # Scheduled sweeps
    # =========================================================================

    def expire_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Turn off every active offer whose end date has passed, restoring its
        products. Offers are processed independently; one failure is logged
        and the sweep moves on.
        """
        now = now or self.clock()
        result = SweepResult(kind="expire")

        for candidate in self.data_store.find_expired_offers(now):
            result.processed += 1
            try:
                changes = self._expire_offer(candidate.id, now)
            except OfferError as e:
                logger.error(f"Failed to expire offer {candidate.id}: {e}")
                result.failed[candidate.id] = str(e)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error expiring offer {candidate.id}")
                result.failed[candidate.id] = str(e)
                continue
            if changes is None:
                continue
            result.succeeded.append(candidate.id)
            result.products_updated += len(changes)

        if result.processed:
            logger.info(
                f"Expire sweep: {len(result.succeeded)} expired, "
                f"{len(result.failed)} failed, {result.products_updated} products restored"
            )
        return result

    def activate_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Apply every effective offer to its free targets that are not yet
        discounted by it.

        Covers offers created before their start date and repairs any
        operation that stopped between its product writes and its offer
        write. Targets held by another offer are skipped with a warning.
        """
        now = now or self.clock()
        result = SweepResult(kind="activate")

        for candidate in self.data_store.find_effective_offers(now):
            result.processed += 1
            try:
                outcome = self._activate_offer(candidate.id, now)
            except OfferError as e:
                logger.error(f"Failed to activate offer {candidate.id}: {e}")
                result.failed[candidate.id] = str(e)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error activating offer {candidate.id}")
                result.failed[candidate.id] = str(e)
                continue
            if outcome is None:
                continue
            changes, skipped = outcome
            if skipped:
                result.skipped_products[candidate.id] = skipped
            if len(changes):
                result.succeeded.append(candidate.id)
                result.products_updated += len(changes)

        if result.succeeded or result.failed:
            logger.info(
                f"Activate sweep: {len(result.succeeded)} applied, "
                f"{len(result.failed)} failed, {result.products_updated} products discounted"
            )
        return result

    def _expire_offer(self, offer_id: str, now: datetime) -> Optional[PriceChangeSet]:
        with self.locks.hold(offer_key(offer_id)):
            offer = self.data_store.get_offer(offer_id)
            # Deleted, deactivated or extended since the sweep listed it
            if offer is None or not offer.active or offer.end_date >= now:
                return None

            owned = [p.id for p in self.data_store.find_products_by_offer(offer_id)]
            affected = _union(offer.products, owned)

            with self.locks.hold(*product_keys(affected)):
                snapshots = self.data_store.get_products(affected)
                changes = self.engine.compute_restore(offer, snapshots)
                expired = self._commit(
                    changes, lambda: self._persist_offer_fields(offer_id, {"active": False})
                )

        logger.info(f"Expired offer {offer_id} ({offer.title}): {len(changes)} products restored")
        self._finish(offer_id, changes, offer_expired(expired, len(changes)))
        return changes

    def _activate_offer(
        self, offer_id: str, now: datetime
    ) -> Optional[tuple[PriceChangeSet, list[str]]]:
        with self.locks.hold(offer_key(offer_id)):
            offer = self.data_store.get_offer(offer_id)
            if offer is None or not offer.is_effective(now):
                return None

            with self.locks.hold(*product_keys(offer.products)):
                snapshots = self.data_store.get_products(offer.products)
                skipped = [p.id for p in snapshots if p.is_claimed_by_other(offer_id)]
                if skipped:
                    logger.warning(
                        f"Offer {offer_id}: skipping products held by other offers: {skipped}"
                    )
                free = [p for p in snapshots if not p.is_claimed_by_other(offer_id)]
                changes = self.engine.compute_apply(offer, free)
                if not len(changes):
                    return changes, skipped
                self._commit(changes, lambda: offer)

        logger.info(f"Activated offer {offer_id} ({offer.title}): {len(changes)} products discounted")
        self._finish(offer_id, changes, offer_activated(offer, len(changes)))
        return changes, skipped

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    def _commit(self, changes: PriceChangeSet, persist_offer: Callable[[], T]) -> T:
        """Write product updates, then the offer; undo product writes on failure."""
        written = self._write_products(changes.updates)
        try:
            return persist_offer()
        except Exception:
            self._rollback(written)
            raise

    def _write_products(self, updates: list[ProductUpdate]) -> list[ProductUpdate]:
        written: list[ProductUpdate] = []
        for update in updates:
            try:
                result = self.data_store.update_product_fields(update.product_id, update.fields)
            except Exception:
                self._rollback(written)
                raise
            if result is None:
                self._rollback(written)
                raise NotFoundError(f"No product found for id {update.product_id}")
            written.append(update)
        return written

    def _rollback(self, written: list[ProductUpdate]) -> None:
        for update in reversed(written):
            try:
                self.data_store.update_product_fields(update.product_id, update.previous)
            except Exception as e:
                logger.error(f"Rollback failed for product {update.product_id}: {e}")
        if written:
            logger.warning(f"Rolled back {len(written)} product updates")

    def _persist_offer_fields(self, offer_id: str, fields: dict[str, Any]) -> Offer:
        offer = self.data_store.update_offer_fields(offer_id, fields)
        if offer is None:
            raise NotFoundError(f"No offer found for id {offer_id}")
        return offer

    def _persist_delete(self, offer_id: str) -> None:
        if not self.data_store.delete_offer(offer_id):
            raise NotFoundError(f"No offer found for id {offer_id}")

    def _finish(self, offer_id: str, changes: PriceChangeSet, event: Event) -> None:
        for error in changes.integrity_errors:
            logger.error(f"Integrity error (offer {error.offer_id or offer_id}): {error}")
        for update in changes.updates:
            self.event_bus.publish(product_price_changed(update, offer_id))
        self.event_bus.publish(event)

    # =========================================================================
    # Validation helpers
    # =========================================================================

    @staticmethod
    def _parse(model, data):
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

    @staticmethod
    def _merge(current: Offer, requested: dict[str, Any]) -> Offer:
        try:
            return Offer.model_validate({**current.model_dump(), **requested})
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

    @staticmethod
    def _guard_expired(offer: Offer, requested: dict[str, Any], now: datetime) -> None:
        if offer.state(now) != OfferState.EXPIRED:
            return
        allowed = set(EDITABLE_WHEN_EXPIRED)
        if requested.get("active") is False:
            allowed.add("active")
        blocked = sorted(set(requested) - allowed)
        if blocked:
            raise ValidationError(
                f"Offer {offer.id} has expired; create a new offer instead of changing {blocked}"
            )

    def _require_offer(self, offer_id: str) -> Offer:
        offer = self.data_store.get_offer(offer_id)
        if not offer:
            raise NotFoundError(f"No offer found for id {offer_id}")
        return offer

    def _load_targets(self, product_ids: list[str]) -> list[Product]:
        products = self.data_store.get_products(product_ids)
        if len(products) != len(product_ids):
            found = {p.id for p in products}
            missing = [pid for pid in product_ids if pid not in found]
            raise NotFoundError(f"Some products do not exist: {', '.join(missing)}")
        return products
