"""
Module: inventory_services
Responsibility:
    Stateful orchestration over the kernel: the transactional QuantityAdjuster
    (sole writer of batch quantities), per-product locking, stock-status
    views, profit-margin reporting and the InventoryService facade.

Architecture position:
    Services -- may import inventory_kernel, inventory_engines and
    inventory_config.  Nothing in the kernel or engines imports this package.
"""

from inventory_services.inventory_service import InventoryService
from inventory_services.product_locks import ProductLockRegistry
from inventory_services.profit_margin import ProfitMarginReportingEngine
from inventory_services.quantity_adjuster import (
    AdjustmentRequest,
    AdjustmentResult,
    NewBatch,
    QuantityAdjuster,
)
from inventory_services.stock_status import (
    BatchStatistics,
    ProductValuation,
    ReorderItem,
    StockStatusCalculator,
)

__all__ = [
    "AdjustmentRequest",
    "AdjustmentResult",
    "BatchStatistics",
    "InventoryService",
    "NewBatch",
    "ProductLockRegistry",
    "ProductValuation",
    "ProfitMarginReportingEngine",
    "QuantityAdjuster",
    "ReorderItem",
    "StockStatusCalculator",
]
