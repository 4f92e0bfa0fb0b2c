"""ORM models for batches and the adjustment ledger."""

from inventory_kernel.models.inventory_adjustment import (
    AdjustmentType,
    InventoryAdjustmentModel,
)
from inventory_kernel.models.product_batch import ProductBatchModel

__all__ = [
    "AdjustmentType",
    "InventoryAdjustmentModel",
    "ProductBatchModel",
]
