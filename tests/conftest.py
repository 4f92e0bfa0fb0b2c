"""
Pytest fixtures for the inventory kernel test suite.

Provides:
- A session-scoped database (SQLite file by default) with tables created once
- Per-test sessions isolated by outer-transaction rollback
- A real-commit session factory for concurrency tests
- Deterministic clock, catalog, settings and service fixtures

Environment Variables:
- DATABASE_URL: database to test against (e.g. a PostgreSQL URL).  If not
  set, a SQLite file under the pytest temp directory is used.
"""

import json
import logging
import os
import threading
from datetime import date
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_kernel.db.base import Base
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.catalog import InMemoryProductCatalog, Product
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.money import Money
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_services import InventoryService, ProductLockRegistry

TEST_ACTOR_ID = "test-user"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.record_sale(...)
            logs = captured_logs()
            assert any(r["message"] == "adjustment_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for locks"
    )


# =============================================================================
# Session-scoped DB infrastructure (engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine(tmp_path_factory):
    """Single engine for the entire test session.

    Pool is large enough for the concurrency tests.
    """
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        db_url = f"sqlite:///{tmp_path_factory.mktemp('db') / 'inventory_test.db'}"
    eng = init_engine_from_url(
        db_url, echo=False,
        pool_size=20, max_overflow=10, pool_timeout=10,
        sqlite_busy_timeout=10.0,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _delete_all_rows(engine):
    """DELETE every row (bypasses the ORM immutability listeners).

    Used by concurrency tests that need real commits and therefore cannot
    rely on the rollback isolation pattern.
    """
    with engine.connect() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(text(f"DELETE FROM {table.name}"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_block`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Any ``session.commit()`` inside the test releases a savepoint; it
      does NOT actually commit to the database
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Concurrency testing fixtures (real commits + DELETE cleanup)
# =============================================================================


@pytest.fixture(scope="function")
def session_factory(db_engine, db_tables):
    """Provide a tracked session factory for creating sessions in concurrent threads.

    The factory tracks all created sessions and on teardown:
    1. Blocks new session creation (late threads get RuntimeError)
    2. Closes all tracked sessions (returns connections to pool)
    3. Deletes all data
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()
    closed = False

    def tracked_factory():
        nonlocal closed
        with lock:
            if closed:
                raise RuntimeError("session_factory closed (fixture teardown)")
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    with lock:
        closed = True

    for s in created_sessions:
        if s.in_transaction():
            s.rollback()
        s.close()

    _delete_all_rows(db_engine)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> str:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Clock fixed at 2024-01-01 12:00 UTC; tests advance it explicitly."""
    return DeterministicClock()


@pytest.fixture
def catalog() -> InMemoryProductCatalog:
    return InMemoryProductCatalog(
        [
            Product(id="widget", name="Widget", price=Money.of("10.00")),
            Product(id="gadget", name="Gadget", price=Money.of("24.50"), reorder_point=5),
            Product(id="bolt", name="Bolt", price=Money.of("0.25"), reorder_point=100),
        ]
    )


@pytest.fixture
def inventory_settings() -> InventorySettings:
    return InventorySettings(retry_backoff_seconds=0.0)


@pytest.fixture
def negative_stock_settings() -> InventorySettings:
    return InventorySettings(allow_negative_stock=True, retry_backoff_seconds=0.0)


@pytest.fixture
def lock_registry() -> ProductLockRegistry:
    return ProductLockRegistry(timeout_seconds=2.0)


@pytest.fixture
def service(session, catalog, inventory_settings, deterministic_clock, lock_registry) -> InventoryService:
    return InventoryService(
        session,
        catalog,
        settings=inventory_settings,
        clock=deterministic_clock,
        locks=lock_registry,
    )


@pytest.fixture
def make_batch(service, deterministic_clock, test_actor_id):
    """Create batches one hour apart so FIFO order follows creation order.

    Usage::

        b1 = make_batch("BATCH-A", cost="4.00", quantity=20)
    """
    counter = {"n": 0}

    def _make(
        batch_number: str | None = None,
        cost: str = "4.00",
        quantity: int = 20,
        product_id: str = "widget",
        expiration_date: date | None = None,
    ):
        counter["n"] += 1
        deterministic_clock.advance(3600)
        result = service.create_batch(
            product_id,
            batch_number or f"BATCH-{counter['n']:03d}",
            Money.of(cost),
            quantity,
            test_actor_id,
            expiration_date=expiration_date,
        )
        return result.batch

    return _make
