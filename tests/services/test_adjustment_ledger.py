"""
AdjustmentLedger: append validation, per-product sequencing and ordered queries.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from inventory_kernel.domain.causes import CauseKind, Damage, Recount, Sale
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError
from inventory_kernel.models.inventory_adjustment import (
    AdjustmentType,
    InventoryAdjustmentModel,
)
from inventory_kernel.services.adjustment_ledger import AdjustmentLedger
from inventory_kernel.services.batch_store import BatchStore


@pytest.fixture
def ledger(session, deterministic_clock):
    return AdjustmentLedger(session, deterministic_clock)


@pytest.fixture
def batch(session, deterministic_clock):
    return BatchStore(session, deterministic_clock).create_batch(
        "widget", "LOT-1", Money.of("4.00"), 20
    )


@pytest.fixture
def record(ledger, batch, deterministic_clock, test_actor_id):
    def _record(quantity_adjusted=-2, cause=None, adjustment_type=AdjustmentType.SUBTRACT, target=None):
        deterministic_clock.advance(10)
        return ledger.record(
            batch=target or batch,
            adjustment_type=adjustment_type,
            quantity_before=(target or batch).quantity_on_hand,
            quantity_adjusted=quantity_adjusted,
            cause=cause or Sale("ord-1"),
            user_id=test_actor_id,
            movement_id=uuid4(),
        )

    return _record


class TestAppend:

    def test_record_fills_derived_columns(self, record, batch, deterministic_clock):
        entry = record(-3, Sale("ord-77"))

        assert entry.id is not None
        assert entry.sequence == 1
        assert entry.product_id == "widget"
        assert entry.batch_id == batch.id
        assert entry.quantity_before == 20
        assert entry.quantity_after == 17
        assert entry.cause_kind == "sale"
        assert entry.cause_ref == "ord-77"
        assert entry.reason == "Sale (Order: ord-77)"
        assert entry.unit_cost_cents == 400
        assert entry.negative_stock is False
        assert entry.created_at == deterministic_clock.now()
        assert entry.cause == Sale("ord-77")
        assert entry.is_sale

    def test_sequence_is_per_product(self, session, ledger, record, deterministic_clock, test_actor_id):
        record()
        record()
        gadget = BatchStore(session, deterministic_clock).create_batch(
            "gadget", "G-1", Money.of("11.00"), 5
        )
        other = record(-1, target=gadget)
        assert other.sequence == 1
        assert ledger.next_sequence("widget") == 3

    def test_inconsistent_after_rejected(self, ledger, batch, test_actor_id):
        entry = InventoryAdjustmentModel(
            product_id="widget",
            batch_id=batch.id,
            movement_id=uuid4(),
            adjustment_type="subtract",
            quantity_adjusted=-2,
            quantity_before=20,
            quantity_after=19,
            cause_kind="sale",
            reason="Sale",
            user_id=test_actor_id,
        )
        with pytest.raises(InvalidArgumentError) as exc_info:
            ledger.append(entry)
        assert exc_info.value.field == "quantity_after"

    def test_unknown_type_rejected(self, ledger, batch, test_actor_id):
        entry = InventoryAdjustmentModel(
            product_id="widget",
            batch_id=batch.id,
            movement_id=uuid4(),
            adjustment_type="teleport",
            quantity_adjusted=1,
            quantity_before=0,
            quantity_after=1,
            cause_kind="other",
            reason="?",
            user_id=test_actor_id,
        )
        with pytest.raises(InvalidArgumentError):
            ledger.append(entry)

    def test_bare_entry_is_completed(self, ledger, batch, test_actor_id):
        first = ledger.append(
            InventoryAdjustmentModel(
                product_id="widget",
                batch_id=batch.id,
                adjustment_type="add",
                quantity_adjusted=5,
                reason="Other: note",
                user_id=test_actor_id,
            )
        )
        assert (first.quantity_before, first.quantity_after) == (0, 5)
        assert first.cause_kind == "other"
        assert first.cause_ref == "Other: note"
        assert first.movement_id is not None

        second = ledger.append(
            InventoryAdjustmentModel(
                product_id="widget",
                batch_id=batch.id,
                adjustment_type="subtract",
                quantity_adjusted=-2,
                reason="Sale (Order: ord-5)",
                user_id=test_actor_id,
            )
        )
        assert (second.quantity_before, second.quantity_after) == (5, 3)
        assert second.cause == Sale("ord-5")
        assert second.is_sale

    def test_reason_filled_from_cause(self, ledger, batch, test_actor_id):
        entry = ledger.append(
            InventoryAdjustmentModel(
                product_id="widget",
                batch_id=batch.id,
                adjustment_type="subtract",
                quantity_adjusted=-1,
                cause_kind="damage",
                cause_ref="dropped",
                user_id=test_actor_id,
            )
        )
        assert entry.reason == Damage("dropped").reason

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"product_id": None}, "product_id"),
            ({"user_id": " "}, "user_id"),
            ({"quantity_adjusted": None}, "quantity_adjusted"),
            ({"quantity_adjusted": 1.5}, "quantity_adjusted"),
            ({"reason": None}, "reason"),
            ({"reason": None, "cause_kind": "levitation"}, "cause_kind"),
        ],
    )
    def test_missing_fields_rejected(self, ledger, batch, test_actor_id, overrides, field):
        values = dict(
            product_id="widget",
            batch_id=batch.id,
            adjustment_type="add",
            quantity_adjusted=1,
            reason="Stock In",
            user_id=test_actor_id,
        )
        values.update(overrides)
        with pytest.raises(InvalidArgumentError) as exc_info:
            ledger.append(InventoryAdjustmentModel(**values))
        assert exc_info.value.field == field
        assert ledger.next_sequence("widget") == 1

    def test_append_logs(self, record, captured_logs):
        record()
        logs = [r for r in captured_logs() if r["message"] == "ledger_entry_appended"]
        assert len(logs) == 1
        assert logs[0]["cause_kind"] == "sale"
        assert logs[0]["sequence"] == 1


class TestQueries:

    def test_query_by_product_range_is_inclusive(self, ledger, record):
        first = record()
        second = record()
        third = record()

        window = list(ledger.query_by_product("widget", first.created_at, second.created_at))
        assert [e.id for e in window] == [first.id, second.id]

        after = list(ledger.query_by_product("widget", start=second.created_at))
        assert [e.id for e in after] == [second.id, third.id]

    def test_same_timestamp_ordered_by_sequence(self, ledger, batch, test_actor_id):
        movement = uuid4()
        entries = [
            ledger.record(
                batch=batch,
                adjustment_type=AdjustmentType.SUBTRACT,
                quantity_before=20,
                quantity_adjusted=-1,
                cause=Sale(),
                user_id=test_actor_id,
                movement_id=movement,
            )
            for _ in range(3)
        ]
        assert [e.sequence for e in ledger.query_by_movement(movement)] == [e.sequence for e in entries]

    def test_query_by_cause(self, ledger, record):
        record(-1, Sale("a"))
        record(-1, Damage("crushed"))
        record(5, Recount("shelf"), AdjustmentType.RECOUNT)

        sales = list(ledger.query_by_cause(CauseKind.SALE))
        assert [e.cause_ref for e in sales] == ["a"]
        recounts = list(ledger.query_by_cause("recount", adjustment_type=AdjustmentType.RECOUNT))
        assert len(recounts) == 1
        assert list(ledger.query_by_cause(CauseKind.DAMAGE, product_id="gadget")) == []

    def test_query_by_reason_prefix(self, ledger, record):
        record(-1, Sale("a"))
        record(-1, Damage("crushed"))
        assert [e.reason for e in ledger.query_by_reason_prefix("Sale")] == ["Sale (Order: a)"]
        assert [e.reason for e in ledger.query_by_reason_prefix("Damage")] == ["Damage: crushed"]

    def test_query_by_batch_and_all(self, ledger, record, batch, deterministic_clock):
        record()
        record()
        assert ledger.query_by_batch(batch.id).count() == 2
        assert ledger.query_all().count() == 2
        assert ledger.query_all(end=deterministic_clock.now() - timedelta(days=1)).count() == 0
