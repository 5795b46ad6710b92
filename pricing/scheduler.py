"""
Expiration scheduler: runs the controller's sweeps on a fixed interval.

Each tick runs expire_sweep (turn off offers whose window has ended and
restore their products) and then activate_sweep (apply offers whose window
has started). The first tick runs immediately on start, to catch offers that
expired while the process was down.

Design decisions:
- One daemon thread, woken early by stop()
- Ticks never overlap: a tick that finds another in progress is skipped
- A failing tick is logged and the thread keeps running
- Lifecycle is explicit (start/stop), owned by whoever composes the app
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from catalog.models import utc_now
from pricing.lifecycle import OfferLifecycleController, SweepResult

logger = logging.getLogger("expiration_scheduler")


@dataclass
class TickResult:
    """Result of one scheduler tick."""
    ran_at: datetime
    expired: SweepResult
    activated: SweepResult


class ExpirationScheduler:
    """Recurring trigger for offer expiry and activation."""

    def __init__(
        self,
        controller: OfferLifecycleController,
        interval_seconds: float = 3600.0,
        run_on_start: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.controller = controller
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.clock = clock or controller.clock or utc_now

        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks_run = 0
        self.ticks_skipped = 0
        self.last_result: Optional[TickResult] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the scheduler thread. Calling start twice is a no-op."""
        with self._state_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="offer-expiration-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            f"Offer expiration scheduler started (every {self.interval_seconds:g}s, "
            f"run on start: {self.run_on_start})"
        )

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the scheduler and wait for an in-flight tick to finish."""
        with self._state_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._thread = None
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Scheduler thread did not stop within timeout")
        else:
            logger.info("Offer expiration scheduler stopped")

    def _run(self) -> None:
        if self.run_on_start:
            self.tick()
        while not self._stop_event.wait(self.interval_seconds):
            self.tick()

    def tick(self) -> Optional[TickResult]:
        """
        Run one sweep cycle now.

        Returns None if another tick was already running (skipped) or the
        tick failed unexpectedly.
        """
        if not self._tick_lock.acquire(blocking=False):
            with self._state_lock:
                self.ticks_skipped += 1
            logger.warning("Previous offer sweep still running; skipping this tick")
            return None
        try:
            now = self.clock()
            expired = self.controller.expire_sweep(now)
            activated = self.controller.activate_sweep(now)
            result = TickResult(ran_at=now, expired=expired, activated=activated)
            with self._state_lock:
                self.last_result = result
                self.ticks_run += 1
            logger.debug(
                f"Tick at {now.isoformat()}: {len(expired.succeeded)} expired, "
                f"{len(activated.succeeded)} activated"
            )
            return result
        except Exception:
            logger.exception("Offer sweep failed")
            return None
        finally:
            self._tick_lock.release()
