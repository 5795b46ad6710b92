"""
Per-key locks that serialize writes to an offer and its target products.

Every controller operation takes the offer's lock first and then all of the
affected product locks in one call. Keys inside a call are acquired in sorted
order, and no thread holding product locks ever waits for an offer lock, so
two operations can never wait on each other in a cycle.

Locks are re-entrant and reference counted; a key's lock is dropped from the
registry once nobody holds or waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional


def offer_key(offer_id: str) -> str:
    return f"offer:{offer_id}"


def product_keys(product_ids: Iterable[str]) -> list[str]:
    return [f"product:{pid}" for pid in product_ids]


class KeyedLocks:
    """Registry of named re-entrant locks."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._refs: dict[str, int] = {}

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._refs[key] = self._refs.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold every lock in keys for the duration of the block.

        Raises TimeoutError if a timeout is given and a lock cannot be
        acquired in time; locks acquired so far are released.
        """
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        acquired = []
        try:
            for key, lock in zip(ordered, locks):
                if timeout is None:
                    lock.acquire()
                elif not lock.acquire(timeout=timeout):
                    raise TimeoutError(f"Timed out waiting for lock {key}")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
