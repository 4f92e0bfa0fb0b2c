"""Stock classification and reorder arithmetic."""

import pytest

from inventory_engines.stock_status import (
    StockStatus,
    classify_stock,
    effective_reorder_point,
    needs_reorder,
    suggested_reorder_quantity,
)
from inventory_kernel.exceptions import InvalidArgumentError


class TestClassifyStock:

    @pytest.mark.parametrize(
        "stock, reorder_point, expected",
        [
            (0, 10, StockStatus.OUT_OF_STOCK),
            (-3, 10, StockStatus.OUT_OF_STOCK),
            (9, 10, StockStatus.LOW_STOCK),
            (10, 10, StockStatus.IN_STOCK),
            (19, None, StockStatus.LOW_STOCK),
            (20, None, StockStatus.IN_STOCK),
        ],
    )
    def test_thresholds(self, stock, reorder_point, expected):
        assert classify_stock(stock, reorder_point, default_threshold=20) is expected

    def test_zero_reorder_point_never_low(self):
        assert classify_stock(1, 0, 20) is StockStatus.IN_STOCK


class TestReorder:

    def test_default_threshold_used_when_unset(self):
        assert effective_reorder_point(None, 20) == 20
        assert needs_reorder(5, None, 20)

    def test_negative_reorder_point_rejected(self):
        with pytest.raises(InvalidArgumentError):
            effective_reorder_point(-1, 20)

    def test_suggested_quantity_is_at_least_default(self):
        assert suggested_reorder_quantity(8, 10, 50) == 50

    def test_suggested_quantity_covers_large_shortfall(self):
        assert suggested_reorder_quantity(0, 120, 50) == 120
        assert suggested_reorder_quantity(-10, 60, 50) == 70
