"""
InventoryService -- single entry point for callers.

Wires the adjuster, stock-status calculator and reporting engine to one
session, catalog, settings object and clock.  Mutations go through the
QuantityAdjuster (and inherit its transaction boundary); queries are
read-only.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_engines.margin import ProfitMarginReport
from inventory_engines.replay import BatchReplay
from inventory_engines.stock_status import StockStatus
from inventory_kernel.domain.catalog import Product, ProductCatalog
from inventory_kernel.domain.causes import AdjustmentCause
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import ReplayMismatchError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_adjustment import InventoryAdjustmentModel
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.sequence import QuerySequence
from inventory_kernel.services.adjustment_ledger import AdjustmentLedger
from inventory_kernel.services.batch_store import UNSET, BatchOrder, BatchStore
from inventory_services.product_locks import ProductLockRegistry
from inventory_services.profit_margin import ProfitMarginReportingEngine
from inventory_services.quantity_adjuster import (
    AdjustmentRequest,
    AdjustmentResult,
    NewBatch,
    QuantityAdjuster,
    batch_layer,
)
from inventory_services.stock_status import (
    BatchStatistics,
    ProductValuation,
    ReorderItem,
    StockStatusCalculator,
)

logger = get_logger("services.inventory")


class InventoryService:
    """
    Query and mutation API over batches, the ledger and reports.

    Set auto_commit=False to let the caller own the transaction.
    """

    def __init__(
        self,
        session: Session,
        catalog: ProductCatalog,
        settings: InventorySettings | None = None,
        clock: Clock | None = None,
        locks: ProductLockRegistry | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._catalog = catalog
        self._settings = settings or InventorySettings.with_defaults()
        self._clock = clock or SystemClock()
        self._adjuster = QuantityAdjuster(
            session,
            settings=self._settings,
            clock=self._clock,
            catalog=catalog,
            locks=locks,
            auto_commit=auto_commit,
        )
        self._stock = StockStatusCalculator(session, catalog, self._settings, self._clock)
        self._reports = ProfitMarginReportingEngine(session, catalog, self._settings)
        self._batches = BatchStore(session, self._clock)
        self._ledger = AdjustmentLedger(session, self._clock)

    @property
    def settings(self) -> InventorySettings:
        return self._settings

    @property
    def ledger(self) -> AdjustmentLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Query API
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: UUID) -> ProductBatchModel:
        return self._batches.get_batch(batch_id)

    def batches_for_product(
        self, product_id: str, order: BatchOrder = BatchOrder.FIFO
    ) -> QuerySequence[ProductBatchModel]:
        return self._batches.get_batches_for_product(product_id, order)

    def current_stock(self, product: Product | str) -> int:
        return self._stock.current_stock(product)

    def stock_status(self, product: Product | str) -> StockStatus:
        return self._stock.stock_status(product)

    def expiring_batches(self, within_days: int | None = None) -> QuerySequence[ProductBatchModel]:
        return self._stock.expiring_batches(within_days)

    def expired_batches(self) -> QuerySequence[ProductBatchModel]:
        return self._stock.expired_batches()

    def reorder_list(self) -> list[ReorderItem]:
        return self._stock.reorder_list()

    def batch_statistics(self) -> BatchStatistics:
        return self._stock.batch_statistics()

    def inventory_valuation(self) -> list[ProductValuation]:
        return self._stock.inventory_valuation()

    def profit_margin_report(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        product_id: str | None = None,
    ) -> ProfitMarginReport:
        return self._reports.profit_margin_report(start, end, product_id)

    def product_profit_margin(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ProfitMarginReport:
        return self._reports.product_profit_margin(product_id, start, end)

    def adjustment_history(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> QuerySequence[InventoryAdjustmentModel]:
        return self._ledger.query_by_product(product_id, start, end)

    # ------------------------------------------------------------------
    # Mutation API
    # ------------------------------------------------------------------

    def create_batch(
        self,
        product_id: str,
        batch_number: str,
        purchase_cost: Money,
        quantity: int,
        user_id: str,
        expiration_date: date | None = None,
        cause: AdjustmentCause | None = None,
    ) -> AdjustmentResult:
        return self._adjuster.create_batch(
            product_id, batch_number, purchase_cost, quantity, user_id, expiration_date, cause
        )

    def add_quantity(
        self,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None = None,
        new_batch: NewBatch | None = None,
        cause: AdjustmentCause | None = None,
    ) -> AdjustmentResult:
        return self._adjuster.add(product_id, quantity, user_id, batch_id, new_batch, cause)

    def subtract_quantity(
        self,
        product_id: str,
        quantity: int,
        user_id: str,
        batch_id: UUID | None = None,
        cause: AdjustmentCause | None = None,
        allow_partial: bool = False,
    ) -> AdjustmentResult:
        return self._adjuster.subtract(product_id, quantity, user_id, batch_id, cause, allow_partial)

    def recount_quantity(
        self,
        product_id: str,
        batch_id: UUID,
        counted_quantity: int,
        user_id: str,
        note: str | None = None,
    ) -> AdjustmentResult:
        return self._adjuster.recount(product_id, batch_id, counted_quantity, user_id, note)

    def record_sale(
        self,
        product_id: str,
        quantity: int,
        order_ref: str | None,
        user_id: str,
        allow_partial: bool = False,
    ) -> AdjustmentResult:
        return self._adjuster.record_sale(product_id, quantity, order_ref, user_id, allow_partial)

    def transfer_quantity(
        self,
        product_id: str,
        from_batch_id: UUID,
        to_batch_id: UUID,
        quantity: int,
        user_id: str,
        transfer_ref: str | None = None,
    ) -> AdjustmentResult:
        return self._adjuster.transfer(
            product_id, from_batch_id, to_batch_id, quantity, user_id, transfer_ref
        )

    def bulk_adjust(self, requests: list[AdjustmentRequest], user_id: str) -> list[AdjustmentResult]:
        return self._adjuster.bulk_adjust(requests, user_id)

    def update_batch(
        self,
        batch_id: UUID,
        user_id: str,
        *,
        expiration_date: date | None | object = UNSET,
    ) -> ProductBatchModel:
        return self._adjuster.update_batch(batch_id, user_id, expiration_date=expiration_date)

    def delete_batch(self, batch_id: UUID, user_id: str) -> ProductBatchModel:
        return self._adjuster.delete_batch(batch_id, user_id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def verify_replay(self, product_id: str) -> dict[UUID, int]:
        """
        Replay the product's ledger from zero and compare with live batches.

        Returns the replayed quantity per batch.

        Raises:
            ReplayMismatchError: for the first batch whose live quantity
                differs from its replayed quantity.
        """
        batches = list(self._batches.get_batches_for_product(product_id, include_archived=True))
        replay = BatchReplay(batch_layer(b) for b in batches)
        replay.apply_all(self._ledger.query_by_product(product_id))
        mismatches = replay.compare({b.id: b.quantity_on_hand for b in batches})
        if mismatches:
            first = mismatches[0]
            logger.error(
                "replay_mismatch",
                extra={
                    "product_id": str(product_id),
                    "mismatches": len(mismatches),
                    "batch_id": str(first.batch_id),
                    "replayed": first.replayed,
                    "live": first.live,
                },
            )
            raise ReplayMismatchError(str(product_id), str(first.batch_id), first.replayed, first.live)
        logger.info(
            "replay_verified",
            extra={"product_id": str(product_id), "entries": replay.applied, "batches": len(batches)},
        )
        return replay.quantities()
