"""
BatchStore: batch persistence, ordering, validation and archival.
"""

from datetime import date

import pytest

from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import (
    BatchNotEmptyError,
    BatchNotFoundError,
    DuplicateBatchNumberError,
    InvalidArgumentError,
)
from inventory_kernel.services.batch_store import BatchOrder, BatchStore


@pytest.fixture
def store(session, deterministic_clock):
    return BatchStore(session, deterministic_clock)


@pytest.fixture
def create(store, deterministic_clock):
    def _create(number, quantity=10, cost="4.00", product_id="widget", expiration_date=None):
        deterministic_clock.advance(60)
        return store.create_batch(product_id, number, Money.of(cost), quantity, expiration_date)

    return _create


class TestCreateBatch:

    def test_create_and_get(self, store, create, deterministic_clock):
        batch = create("LOT-1", quantity=12, cost="3.25")
        loaded = store.get_batch(batch.id)

        assert loaded.batch_number == "LOT-1"
        assert loaded.quantity_on_hand == 12
        assert loaded.purchase_cost == Money.of("3.25")
        assert loaded.created_at == deterministic_clock.now()
        assert loaded.version == 1

    def test_duplicate_number_rejected(self, create):
        create("LOT-1")
        with pytest.raises(DuplicateBatchNumberError) as exc_info:
            create("LOT-1")
        assert exc_info.value.batch_number == "LOT-1"

    def test_same_number_allowed_for_other_product(self, create):
        create("LOT-1", product_id="widget")
        assert create("LOT-1", product_id="gadget").product_id == "gadget"

    @pytest.mark.parametrize("number", ["", "   ", "-LOT", "LOT\n1", "x" * 101])
    def test_malformed_number_rejected(self, create, number):
        with pytest.raises(InvalidArgumentError):
            create(number)

    def test_negative_quantity_rejected(self, create):
        with pytest.raises(InvalidArgumentError):
            create("LOT-1", quantity=-1)

    def test_negative_cost_rejected(self, create):
        with pytest.raises(InvalidArgumentError):
            create("LOT-1", cost="-0.01")

    def test_zero_cost_allowed(self, create):
        assert create("FREE-1", cost="0").purchase_cost.is_zero


class TestOrdering:

    def test_fifo_is_creation_order(self, store, create):
        first = create("Z-LAST-NAME")
        second = create("A-FIRST-NAME")
        ids = [b.id for b in store.get_batches_for_product("widget", BatchOrder.FIFO)]
        assert ids == [first.id, second.id]

    def test_newest_first(self, store, create):
        first = create("L1")
        second = create("L2")
        assert store.get_batches_for_product("widget", BatchOrder.NEWEST).first().id == second.id
        assert store.get_batches_for_product("widget").first().id == first.id

    def test_expiration_order_puts_undated_last(self, store, create):
        undated = create("L1")
        late = create("L2", expiration_date=date(2024, 6, 1))
        early = create("L3", expiration_date=date(2024, 2, 1))
        ids = [b.id for b in store.get_batches_for_product("widget", BatchOrder.EXPIRATION)]
        assert ids == [early.id, late.id, undated.id]

    def test_sequence_is_restartable(self, store, create):
        create("L1")
        create("L2")
        batches = store.get_batches_for_product("widget")
        assert len(list(batches)) == 2
        assert len(list(batches)) == 2
        assert batches.count() == 2

    def test_with_stock_only(self, store, create):
        create("EMPTY", quantity=0)
        stocked = create("FULL", quantity=3)
        assert [b.id for b in store.get_batches_for_product("widget", with_stock_only=True)] == [stocked.id]


class TestDeleteBatch:

    def test_batch_with_stock_cannot_be_deleted(self, store, create):
        batch = create("L1", quantity=5)
        with pytest.raises(BatchNotEmptyError) as exc_info:
            store.delete_batch(batch.id)
        assert exc_info.value.quantity_on_hand == 5

    def test_empty_batch_is_archived(self, store, create, deterministic_clock):
        batch = create("L1", quantity=0)
        archived = store.delete_batch(batch.id)

        assert archived.archived_at == deterministic_clock.now()
        with pytest.raises(BatchNotFoundError):
            store.get_batch(batch.id)
        assert store.get_batch(batch.id, include_archived=True).is_archived
        assert store.get_batches_for_product("widget").count() == 0

    def test_archived_number_still_reserved(self, store, create):
        batch = create("L1", quantity=0)
        store.delete_batch(batch.id)
        with pytest.raises(DuplicateBatchNumberError):
            create("L1")


class TestTotals:

    def test_total_on_hand_sums_live_batches(self, store, create):
        create("L1", quantity=4)
        create("L2", quantity=6)
        create("G1", quantity=50, product_id="gadget")
        assert store.total_on_hand("widget") == 10
        assert store.total_on_hand("unknown") == 0

    def test_apply_quantity_bumps_version(self, store, create, deterministic_clock):
        batch = create("L1", quantity=4)
        deterministic_clock.advance(5)
        store.apply_quantity(batch, 9)
        assert batch.version == 2
        assert batch.updated_at == deterministic_clock.now()
