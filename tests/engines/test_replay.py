"""Ledger replay: batch quantities rebuilt from signed deltas."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from inventory_engines.fifo import BatchLayer
from inventory_engines.replay import BatchReplay, ReplayMismatch, replay_quantities
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass
class Entry:
    batch_id: UUID | None
    quantity_adjusted: int


def _template(number: str, hours: int, cost: str = "1.00") -> BatchLayer:
    return BatchLayer(uuid4(), number, T0 + timedelta(hours=hours), Money.of(cost), quantity=999)


class TestReplayQuantities:

    def test_sums_per_batch(self):
        a, b = uuid4(), uuid4()
        entries = [Entry(a, 20), Entry(b, 20), Entry(a, -20), Entry(b, -5), Entry(None, 3)]
        assert replay_quantities(entries) == {a: 0, b: 15}


class TestBatchReplay:

    def test_templates_start_at_zero(self):
        replay = BatchReplay([_template("A", 0)])
        assert list(replay.quantities().values()) == [0]

    def test_snapshot_is_fifo_ordered(self):
        newer = _template("NEW", 5)
        older = _template("OLD", 1)
        replay = BatchReplay([newer, older])
        replay.apply(Entry(older.batch_id, 4))
        snapshot = replay.snapshot()
        assert [(layer.batch_number, layer.quantity) for layer in snapshot] == [("OLD", 4), ("NEW", 0)]

    def test_unknown_batch_rejected(self):
        replay = BatchReplay([_template("A", 0)])
        with pytest.raises(InvalidArgumentError):
            replay.apply(Entry(uuid4(), 1))

    def test_compare_reports_mismatches(self):
        t = _template("A", 0)
        replay = BatchReplay([t]).apply_all([Entry(t.batch_id, 10), Entry(t.batch_id, -3)])
        assert replay.compare({t.batch_id: 7}) == []
        assert replay.compare({t.batch_id: 8}) == [ReplayMismatch(t.batch_id, 7, 8)]

    def test_replay_is_deterministic(self):
        t1, t2 = _template("A", 0), _template("B", 1)
        entries = [Entry(t1.batch_id, 5), Entry(t2.batch_id, 5), Entry(t1.batch_id, -2)]
        first = BatchReplay([t1, t2]).apply_all(entries).quantities()
        second = BatchReplay([t2, t1]).apply_all(entries).quantities()
        assert first == second
