"""
Tests for the keyed lock registry.
"""

import threading

import pytest

from pricing.locks import KeyedLocks, offer_key, product_keys


class TestKeys:
    def test_key_helpers(self):
        assert offer_key("o1") == "offer:o1"
        assert product_keys(["p1", "p2"]) == ["product:p1", "product:p2"]


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    def test_registry_empties_after_release(self):
        locks = KeyedLocks()

        with locks.hold("a", "b"):
            assert len(locks) == 2
        assert len(locks) == 0

    def test_reentrant(self):
        locks = KeyedLocks()

        with locks.hold("a"):
            with locks.hold("a", "b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_duplicate_keys_are_held_once(self):
        locks = KeyedLocks()

        with locks.hold("a", "a"):
            assert len(locks) == 1

    def test_blocks_other_threads(self):
        locks = KeyedLocks()
        acquired = threading.Event()

        def contender():
            with locks.hold("a"):
                acquired.set()

        with locks.hold("a"):
            worker = threading.Thread(target=contender)
            worker.start()
            assert not acquired.wait(timeout=0.1)

        worker.join(timeout=5)
        assert acquired.is_set()

    def test_timeout(self):
        locks = KeyedLocks()
        outcome = []
        holding = threading.Event()
        done = threading.Event()

        def holder():
            with locks.hold("b"):
                holding.set()
                done.wait(timeout=5)

        worker = threading.Thread(target=holder)
        worker.start()
        holding.wait(timeout=5)

        with pytest.raises(TimeoutError, match="lock b"):
            with locks.hold("a", "b", timeout=0.05):
                outcome.append("entered")

        done.set()
        worker.join(timeout=5)
        assert outcome == []
        # "a" was released when "b" timed out
        assert len(locks) == 0

    def test_release_on_exception(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")

        assert len(locks) == 0
