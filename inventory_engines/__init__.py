"""
Module: inventory_engines
Responsibility:
    Pure calculation engines for batch costing: FIFO allocation over an
    immutable snapshot, ledger replay, profit-margin arithmetic and stock
    classification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import inventory_kernel.domain and inventory_kernel.exceptions.
    MUST NOT import inventory_services or any ORM/session code.

Invariants enforced:
    - Purity: engines never read the clock; dates are parameters.
    - Integer minor-unit money; margins are exact Decimal ratios.
    - Determinism: identical inputs always produce identical outputs.
"""

from inventory_engines.fifo import (
    Allocation,
    AllocationResult,
    BatchLayer,
    allocate_fifo,
    fifo_order,
)
from inventory_engines.margin import (
    DailyTrend,
    DataQualityWarning,
    ProductProfitSummary,
    ProfitMarginReport,
    SaleProfit,
    WarningKind,
    margin_pct,
    summarize_sales,
)
from inventory_engines.replay import BatchReplay, ReplayMismatch, replay_quantities
from inventory_engines.stock_status import (
    StockStatus,
    classify_stock,
    effective_reorder_point,
    needs_reorder,
    suggested_reorder_quantity,
)

__all__ = [
    "Allocation",
    "AllocationResult",
    "BatchLayer",
    "BatchReplay",
    "DailyTrend",
    "DataQualityWarning",
    "ProductProfitSummary",
    "ProfitMarginReport",
    "ReplayMismatch",
    "SaleProfit",
    "StockStatus",
    "WarningKind",
    "allocate_fifo",
    "classify_stock",
    "effective_reorder_point",
    "fifo_order",
    "margin_pct",
    "needs_reorder",
    "replay_quantities",
    "suggested_reorder_quantity",
    "summarize_sales",
]
