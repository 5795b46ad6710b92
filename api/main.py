"""
FastAPI application exposing the offer lifecycle.

This is a thin adapter: request bodies are passed to the lifecycle controller
as-is, and the controller's error taxonomy is mapped to HTTP status codes.
The expiration scheduler is started and stopped with the application.

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from catalog.data_store import DataStore
from catalog.errors import (
    ConflictError,
    IntegrityError,
    NotFoundError,
    OfferError,
    StoreError,
    ValidationError,
)
from pricing.config import PricingConfig
from pricing.lifecycle import OfferLifecycleController, SweepResult
from pricing.scheduler import ExpirationScheduler

config = PricingConfig.from_env()

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("offers_api")

# Module-level instances (would use proper DI in production)
_controller: Optional[OfferLifecycleController] = None
_scheduler: Optional[ExpirationScheduler] = None


def get_controller() -> OfferLifecycleController:
    """Get the lifecycle controller instance."""
    global _controller
    if _controller is None:
        _controller = OfferLifecycleController(data_store=DataStore(data_dir=config.data_dir))
    return _controller


def get_scheduler() -> ExpirationScheduler:
    """Get the scheduler instance (created stopped)."""
    global _scheduler
    if _scheduler is None:
        _scheduler = ExpirationScheduler(
            get_controller(),
            interval_seconds=config.sweep_interval_seconds,
            run_on_start=config.sweep_on_start,
        )
    return _scheduler


def reset_api_state(
    controller: Optional[OfferLifecycleController] = None,
    scheduler: Optional[ExpirationScheduler] = None,
) -> None:
    """Reset API state (for testing)."""
    global _controller, _scheduler
    _controller = controller
    _scheduler = scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiration scheduler with the app and stop it on shutdown."""
    scheduler = get_scheduler() if config.scheduler_enabled else None
    if scheduler:
        scheduler.start()
    logger.info("Offer pricing API started")
    yield
    if scheduler:
        scheduler.stop()
    logger.info("Shutting down")


app = FastAPI(
    title="Offer Pricing API",
    description="Create, update and delete promotional offers; product prices follow automatically.",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    IntegrityError: 500,
    StoreError: 500,
}


@app.exception_handler(OfferError)
async def offer_error_handler(request: Request, exc: OfferError) -> JSONResponse:
    status_code = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 500
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    content: dict[str, Any] = {"status": "fail", "message": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, ConflictError):
        content["products"] = exc.product_ids
    return JSONResponse(status_code=status_code, content=content)


def _sweep_summary(result: SweepResult) -> dict[str, Any]:
    return {
        "processed": result.processed,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "productsUpdated": result.products_updated,
    }


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    scheduler = _scheduler
    return {
        "status": "healthy",
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
    }


# =============================================================================
# Offers
# =============================================================================

@app.post("/offers", status_code=201, tags=["Offers"])
def create_offer(
    payload: dict[str, Any] = Body(...),
    controller: OfferLifecycleController = Depends(get_controller),
):
    """Create an offer. Targets are discounted immediately if the offer is in its window."""
    offer = controller.create_offer(payload)
    return {"status": "success", "data": offer.to_document()}


@app.get("/offers", tags=["Offers"])
def list_offers(
    active: Optional[bool] = None,
    current: bool = False,
    controller: OfferLifecycleController = Depends(get_controller),
):
    """List offers, optionally only active ones or only those in their window now."""
    offers = controller.list_offers(active=active, current=current)
    return {
        "status": "success",
        "results": len(offers),
        "data": [o.to_document() for o in offers],
    }


@app.get("/offers/{offer_id}", tags=["Offers"])
def get_offer(offer_id: str, controller: OfferLifecycleController = Depends(get_controller)):
    return {"status": "success", "data": controller.get_offer(offer_id).to_document()}


@app.patch("/offers/{offer_id}", tags=["Offers"])
def update_offer(
    offer_id: str,
    payload: dict[str, Any] = Body(...),
    controller: OfferLifecycleController = Depends(get_controller),
):
    """Partially update an offer and reconcile its products' prices."""
    offer = controller.update_offer(offer_id, payload)
    return {"status": "success", "data": offer.to_document()}


@app.delete("/offers/{offer_id}", status_code=204, tags=["Offers"])
def delete_offer(offer_id: str, controller: OfferLifecycleController = Depends(get_controller)):
    """Delete an offer and restore its products' prices."""
    controller.delete_offer(offer_id)
    return Response(status_code=204)


@app.post("/offers/sweep", tags=["Offers"])
def run_sweep(scheduler: ExpirationScheduler = Depends(get_scheduler)):
    """Run one expire/activate sweep now instead of waiting for the next tick."""
    skipped_before = scheduler.ticks_skipped
    result = scheduler.tick()
    if result is None and scheduler.ticks_skipped > skipped_before:
        return JSONResponse(
            status_code=409,
            content={"status": "fail", "message": "A sweep is already running"},
        )
    if result is None:
        return JSONResponse(
            status_code=500,
            content={"status": "fail", "message": "Sweep failed; see server logs"},
        )
    return {
        "status": "success",
        "ranAt": result.ran_at.isoformat(),
        "expired": _sweep_summary(result.expired),
        "activated": _sweep_summary(result.activated),
    }


# =============================================================================
# Products
# =============================================================================

@app.get("/products/{product_id}", tags=["Products"])
def get_product(product_id: str, controller: OfferLifecycleController = Depends(get_controller)):
    return {"status": "success", "data": controller.get_product(product_id).to_document()}
