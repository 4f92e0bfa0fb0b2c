"""
Per-product mutual exclusion for stock mutations.

Every read-modify-write of a product's batches (including the FIFO walk and
the commit) runs while holding that product's lock, so two sales of the same
product never interleave inside one process.  Across processes the database
provides the same guarantee (row locks on PostgreSQL, BEGIN IMMEDIATE on
SQLite) and batch version checks catch anything that slips through.

Locks are re-entrant so a bulk adjustment that already holds a product's lock
can run the single-product operations unchanged.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager

from inventory_kernel.exceptions import LockTimeoutError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.product_locks")


class ProductLockRegistry:
    """
    One re-entrant lock per product id, created on first use.

    Locks are never evicted: the registry holds one small RLock per product
    id seen by the process, in practice bounded by the catalog size.  Evicting
    an idle lock could hand a second thread a fresh lock for a product that
    is still held.

    Contract:
        ``hold`` raises LockTimeoutError (a ConcurrentModificationError) when
        the lock is not acquired within the timeout; the caller may retry.
    """

    _shared: ProductLockRegistry | None = None
    _shared_guard = threading.Lock()

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    @classmethod
    def shared(cls) -> ProductLockRegistry:
        """Process-wide registry used when none is injected."""
        with cls._shared_guard:
            if cls._shared is None:
                cls._shared = cls()
            return cls._shared

    def lock_for(self, product_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_id: str, timeout: float | None = None) -> Iterator[None]:
        wait = self.timeout_seconds if timeout is None else timeout
        lock = self.lock_for(str(product_id))
        t0 = time.monotonic()
        if not lock.acquire(timeout=wait):
            logger.warning(
                "product_lock_timeout",
                extra={"product_id": str(product_id), "timeout_seconds": wait},
            )
            raise LockTimeoutError(str(product_id), wait)
        waited_ms = round((time.monotonic() - t0) * 1000, 2)
        if waited_ms > 50:
            logger.info(
                "product_lock_contended",
                extra={"product_id": str(product_id), "waited_ms": waited_ms},
            )
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def hold_many(self, product_ids: Iterable[str], timeout: float | None = None) -> Iterator[None]:
        """Hold several products' locks, acquired in sorted order."""
        with ExitStack() as stack:
            for product_id in sorted({str(p) for p in product_ids}):
                stack.enter_context(self.hold(product_id, timeout))
            yield
