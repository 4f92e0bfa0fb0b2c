"""
FIFO allocation engine.

Pure function over BatchLayer snapshots: oldest batch first, no cost for
unsourced units, inputs never mutated.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from inventory_engines.fifo import BatchLayer, allocate_fifo, fifo_order
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def _layer(number: str, quantity: int, cost: str, hours: int, batch_id: UUID | None = None) -> BatchLayer:
    return BatchLayer(
        batch_id=batch_id or uuid4(),
        batch_number=number,
        created_at=T0 + timedelta(hours=hours),
        unit_cost=Money.of(cost),
        quantity=quantity,
    )


class TestAllocation:

    def test_two_batches_consumed_oldest_first(self):
        b1 = _layer("B1", 5, "10.00", 0)
        b2 = _layer("B2", 5, "12.00", 1)

        result = allocate_fifo([b2, b1], 8)

        assert [(a.batch_number, a.quantity, a.unit_cost) for a in result.allocations] == [
            ("B1", 5, Money.of("10.00")),
            ("B2", 3, Money.of("12.00")),
        ]
        assert result.total_cost == Money.of("86.00")
        assert result.unfulfilled == 0
        assert result.is_complete

        after = {layer.batch_number: layer.quantity for layer in result.apply_to([b1, b2])}
        assert after == {"B1": 0, "B2": 2}

    def test_inputs_are_not_mutated(self):
        b1 = _layer("B1", 5, "10.00", 0)
        allocate_fifo([b1], 3)
        assert b1.quantity == 5

    def test_exact_single_batch(self):
        b1 = _layer("B1", 4, "2.50", 0)
        result = allocate_fifo([b1], 4)
        assert result.allocations[0].quantity == 4
        assert result.total_cost == Money.of("10.00")

    def test_short_allocation_reports_unfulfilled(self):
        b1 = _layer("B1", 3, "1.00", 0)
        result = allocate_fifo([b1], 10)
        assert result.allocated == 3
        assert result.unfulfilled == 7
        assert result.total_cost == Money.of("3.00")
        assert not result.is_complete

    def test_empty_and_negative_layers_skipped(self):
        empty = _layer("E", 0, "9.00", 0)
        negative = _layer("N", -2, "9.00", 1)
        stocked = _layer("S", 5, "1.00", 2)
        result = allocate_fifo([empty, negative, stocked], 2)
        assert [a.batch_number for a in result.allocations] == ["S"]

    def test_no_layers(self):
        result = allocate_fifo([], 5, currency="USD")
        assert result.allocations == ()
        assert result.unfulfilled == 5
        assert result.total_cost == Money.zero("USD")

    @pytest.mark.parametrize("quantity", [0, -1, True, 2.5])
    def test_quantity_must_be_positive_integer(self, quantity):
        with pytest.raises(InvalidArgumentError):
            allocate_fifo([_layer("B1", 5, "1.00", 0)], quantity)

    def test_allocation_conserves_quantity(self):
        layers = [_layer(f"B{i}", i + 1, "1.00", i) for i in range(5)]
        result = allocate_fifo(layers, 12)
        assert sum(a.quantity for a in result.allocations) + result.unfulfilled == 12


class TestOrdering:

    def test_equal_timestamps_fall_back_to_batch_id(self):
        low = UUID(int=1)
        high = UUID(int=2)
        ordered = fifo_order([_layer("HIGH", 1, "1.00", 0, high), _layer("LOW", 1, "1.00", 0, low)])
        assert [layer.batch_number for layer in ordered] == ["LOW", "HIGH"]

    def test_to_dict_uses_minor_units(self):
        result = allocate_fifo([_layer("B1", 5, "10.00", 0)], 2)
        payload = result.to_dict()
        assert payload["total_cost_cents"] == 2000
        assert payload["allocations"][0]["unit_cost_cents"] == 1000


class TestTracing:

    def test_engine_trace_logged(self, captured_logs):
        allocate_fifo([_layer("B1", 5, "1.00", 0)], 1)
        traces = [r for r in captured_logs() if r["message"] == "INVENTORY_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "fifo_allocation"
        assert len(traces[-1]["input_fingerprint"]) == 16
