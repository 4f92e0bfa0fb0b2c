"""Column types and model helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from inventory_kernel.db.base import UTCDateTime, UUIDString
from inventory_kernel.domain.money import Money
from inventory_kernel.models.product_batch import ProductBatchModel


class TestUTCDateTime:

    def test_aware_value_stored_as_naive_utc(self):
        value = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        stored = UTCDateTime().process_bind_param(value, None)
        assert stored == datetime(2024, 1, 1, 12, 0)
        assert stored.tzinfo is None

    def test_naive_value_rejected(self):
        with pytest.raises(ValueError):
            UTCDateTime().process_bind_param(datetime(2024, 1, 1), None)

    def test_loaded_value_is_utc(self):
        loaded = UTCDateTime().process_result_value(datetime(2024, 1, 1, 12, 0), None)
        assert loaded.tzinfo is not None
        assert loaded.utcoffset() == timedelta(0)

    def test_round_trip_through_database(self, make_batch, service, deterministic_clock):
        batch = make_batch()
        assert service.get_batch(batch.id).created_at == deterministic_clock.now()


class TestUUIDString:

    def test_none_passes_through(self):
        assert UUIDString().process_bind_param(None, None) is None
        assert UUIDString().process_result_value(None, None) is None


class TestProductBatchModel:

    def test_money_helpers(self):
        batch = ProductBatchModel(
            product_id="widget",
            batch_number="LOT-1",
            purchase_cost_cents=425,
            currency="USD",
            quantity_on_hand=4,
        )
        assert batch.purchase_cost == Money.of("4.25")
        assert batch.stock_value == Money.of("17.00")
        assert not batch.is_archived
        assert "LOT-1" in repr(batch)
