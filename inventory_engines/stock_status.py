"""
inventory_engines.stock_status -- pure stock classification and reorder math.

    stock <= 0                  -> OUT_OF_STOCK
    0 < stock < reorder point   -> LOW_STOCK
    otherwise                   -> IN_STOCK

A product without its own reorder point uses the configured default
threshold.  The suggested reorder quantity is the larger of the configured
default order size and the shortfall to the reorder point.
"""

from __future__ import annotations

from enum import Enum

from inventory_kernel.exceptions import InvalidArgumentError


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


def effective_reorder_point(reorder_point: int | None, default_threshold: int) -> int:
    if reorder_point is None:
        return default_threshold
    if reorder_point < 0:
        raise InvalidArgumentError("reorder_point", reorder_point, "must not be negative")
    return reorder_point


def classify_stock(
    current_stock: int,
    reorder_point: int | None,
    default_threshold: int,
) -> StockStatus:
    if current_stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if current_stock < effective_reorder_point(reorder_point, default_threshold):
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def needs_reorder(current_stock: int, reorder_point: int | None, default_threshold: int) -> bool:
    return current_stock < effective_reorder_point(reorder_point, default_threshold)


def suggested_reorder_quantity(
    current_stock: int,
    reorder_point: int,
    default_reorder_quantity: int,
) -> int:
    """
    Units to order: max(default order size, shortfall to the reorder point).

    A negative current stock (negative-stock override) widens the shortfall.
    """
    shortfall = reorder_point - current_stock
    return max(default_reorder_quantity, shortfall)
