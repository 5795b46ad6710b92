"""
JSON-backed data store for catalog products and promotional offers.

This module plays both external collaborators the pricing subsystem needs:
the Product Store and the Offer Store. Records are seeded from JSON fixture
files and all writes stay in memory.

Design decisions:
- Fixtures are loaded lazily on first access
- Every read returns a copy, so callers work on snapshots and must write
  changes back through update_* methods
- Field updates are re-validated against the model; an update that would
  make a record invalid is rejected with StoreError
- A single re-entrant lock guards the collections; per-offer and per-product
  serialization is the caller's job (see pricing.locks)
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from catalog.errors import StoreError
from catalog.models import Offer, Product, as_utc, utc_now

logger = logging.getLogger("data_store")


class DataStore:
    """
    Central store for products and offers.

    In production these would be two collections in a transactional document
    store. This store keeps the same surface: get by id, get many by id,
    filter, atomic field update, create and delete.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the data store.

        Args:
            data_dir: Path to the directory containing products.json and offers.json.
                      Defaults to ./data relative to project root.
        """
        if data_dir is None:
            data_dir = Path(__file__).parent.parent / "data"

        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

        self._products: Optional[dict[str, Product]] = None
        self._offers: Optional[dict[str, Offer]] = None

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        """Load a JSON fixture file. A missing file is an empty collection."""
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        try:
            with open(filepath, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load {filepath}: {e}") from e

    def _ensure_products_loaded(self):
        if self._products is None:
            data = self._load_json("products.json")
            try:
                self._products = {p["id"]: Product.model_validate(p) for p in data}
            except PydanticValidationError as e:
                raise StoreError(f"Invalid product fixture: {e}") from e
            logger.debug(f"Loaded {len(self._products)} products")

    def _ensure_offers_loaded(self):
        if self._offers is None:
            data = self._load_json("offers.json")
            try:
                self._offers = {o["id"]: Offer.model_validate(o) for o in data}
            except PydanticValidationError as e:
                raise StoreError(f"Invalid offer fixture: {e}") from e
            logger.debug(f"Loaded {len(self._offers)} offers")

    # =========================================================================
    # Product Operations
    # =========================================================================

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a product by ID."""
        with self._lock:
            self._ensure_products_loaded()
            product = self._products.get(product_id)
            return product.model_copy(deep=True) if product else None

    def get_products(self, product_ids: Optional[Iterable[str]] = None) -> list[Product]:
        """
        Get many products by ID, in the order requested.

        Unknown ids are skipped; callers compare lengths to detect them.
        With no ids, returns every product.
        """
        with self._lock:
            self._ensure_products_loaded()
            if product_ids is None:
                return [p.model_copy(deep=True) for p in self._products.values()]
            return [
                self._products[pid].model_copy(deep=True)
                for pid in product_ids
                if pid in self._products
            ]

    def find_products_by_offer(self, offer_id: str) -> list[Product]:
        """Find all products whose bookkeeping points at an offer."""
        with self._lock:
            self._ensure_products_loaded()
            return [
                p.model_copy(deep=True) for p in self._products.values()
                if p.active_offer_id == offer_id
            ]

    def add_product(self, product: Product) -> Product:
        """Insert or replace a product record."""
        with self._lock:
            self._ensure_products_loaded()
            self._products[product.id] = product.model_copy(deep=True)
            return product.model_copy(deep=True)

    def update_product_fields(self, product_id: str, fields: dict[str, Any]) -> Optional[Product]:
        """
        Atomically update fields on a product.

        Returns the updated product or None if not found.
        """
        with self._lock:
            self._ensure_products_loaded()
            product = self._products.get(product_id)
            if not product:
                return None
            updated = self._revalidate(Product, product, fields)
            self._products[product_id] = updated
            return updated.model_copy(deep=True)

    # =========================================================================
    # Offer Operations
    # =========================================================================

    def create_offer(self, offer: Offer) -> Offer:
        """Persist a new offer. Fails if the id is already taken."""
        with self._lock:
            self._ensure_offers_loaded()
            if offer.id in self._offers:
                raise StoreError(f"Offer already exists: {offer.id}")
            self._offers[offer.id] = offer.model_copy(deep=True)
            return offer.model_copy(deep=True)

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        """Get an offer by ID."""
        with self._lock:
            self._ensure_offers_loaded()
            offer = self._offers.get(offer_id)
            return offer.model_copy(deep=True) if offer else None

    def get_offers(
        self,
        active: Optional[bool] = None,
        current_at: Optional[datetime] = None,
    ) -> list[Offer]:
        """
        List offers, optionally filtered.

        Args:
            active: Only offers with this active flag
            current_at: Only offers whose window contains this instant
        """
        with self._lock:
            self._ensure_offers_loaded()
            offers = list(self._offers.values())
        if active is not None:
            offers = [o for o in offers if o.active == active]
        if current_at is not None:
            at = as_utc(current_at)
            offers = [o for o in offers if o.start_date <= at <= o.end_date]
        return [o.model_copy(deep=True) for o in offers]

    def find_expired_offers(self, now: datetime) -> list[Offer]:
        """Offers still flagged active whose end date is before now."""
        now = as_utc(now)
        return [o for o in self.get_offers(active=True) if o.end_date < now]

    def find_effective_offers(self, now: datetime) -> list[Offer]:
        """Offers flagged active whose window contains now."""
        return self.get_offers(active=True, current_at=now)

    def update_offer_fields(self, offer_id: str, fields: dict[str, Any]) -> Optional[Offer]:
        """
        Atomically update fields on an offer and stamp updated_at.

        Returns the updated offer or None if not found.
        """
        with self._lock:
            self._ensure_offers_loaded()
            offer = self._offers.get(offer_id)
            if not offer:
                return None
            updated = self._revalidate(Offer, offer, {**fields, "updated_at": utc_now()})
            self._offers[offer_id] = updated
            return updated.model_copy(deep=True)

    def delete_offer(self, offer_id: str) -> bool:
        """Remove an offer. Returns False if it did not exist."""
        with self._lock:
            self._ensure_offers_loaded()
            return self._offers.pop(offer_id, None) is not None

    # =========================================================================
    # Utility Methods
    # =========================================================================

    @staticmethod
    def _revalidate(model, record, fields: dict[str, Any]):
        unknown = set(fields) - set(model.model_fields)
        if unknown:
            raise StoreError(f"Unknown {model.__name__} fields: {sorted(unknown)}")
        try:
            return model.model_validate({**record.model_dump(), **fields})
        except PydanticValidationError as e:
            raise StoreError(f"Rejected {model.__name__} update for {record.id}: {e}") from e

    def reload(self):
        """
        Force reload all data from JSON files.

        Useful for tests that modify fixture files.
        """
        with self._lock:
            self._products = None
            self._offers = None


# Module-level singleton for convenience
# In tests, create a new DataStore instance with test fixtures
_default_store: Optional[DataStore] = None


def get_data_store() -> DataStore:
    """Get the default data store singleton."""
    global _default_store
    if _default_store is None:
        _default_store = DataStore()
    return _default_store


def reset_data_store(data_dir: Optional[Path] = None) -> DataStore:
    """Replace the default data store (useful for testing and the CLI)."""
    global _default_store
    _default_store = DataStore(data_dir=data_dir)
    return _default_store
