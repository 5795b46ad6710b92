"""
Error taxonomy for offer price synchronization.

Every failure the lifecycle controller surfaces to its callers is one of these.
The HTTP adapter maps them to status codes; the scheduler logs them.

- ValidationError: input rejected before any store mutation
- ConflictError: a target product is owned by a different active offer
- NotFoundError: an offer or product id does not resolve
- IntegrityError: a restore found no stored original price
- StoreError: the product/offer store failed
"""

from typing import Optional


class OfferError(Exception):
    """Base class for all errors raised by the pricing subsystem."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(OfferError):
    """Offer input or a requested transition is invalid."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConflictError(OfferError):
    """One or more target products already belong to another active offer."""

    def __init__(self, message: str, product_ids: Optional[list[str]] = None):
        super().__init__(message)
        self.product_ids = product_ids or []


class NotFoundError(OfferError):
    """An offer or product could not be resolved."""


class IntegrityError(OfferError):
    """
    A restore was requested but the original price is missing.

    Raised into the change set rather than thrown: the engine records one of
    these per product/field and leaves the live price untouched.
    """

    def __init__(self, product_id: str, field_name: str, offer_id: Optional[str] = None):
        super().__init__(
            f"Cannot restore {field_name} for product {product_id}: original price is missing"
        )
        self.product_id = product_id
        self.field_name = field_name
        self.offer_id = offer_id


class StoreError(OfferError):
    """The backing store failed to read or write a record."""
