"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor for services that write through a caller-supplied
    SQLAlchemy ``Session`` using ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: kernel services flush within the caller's
    transaction.  The QuantityAdjuster (or the test harness) owns
    commit/rollback, which is what makes "batch mutation + ledger append"
    atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel write services.

    Guarantees:
        - The service never calls ``session.commit()`` or ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
