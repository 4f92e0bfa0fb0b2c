"""
ProfitMarginReportingEngine -- historical COGS and margins from the ledger.

Responsibility:
    Price every recorded sale against the FIFO cost layers that existed
    immediately before it, and aggregate revenue, COGS and margin.

Architecture position:
    Services -- read-only.  Reads sale rows and the full per-product ledger,
    replays batch quantities with inventory_engines.replay, and hands each
    snapshot to the same allocate_fifo used for live sales.

Invariants enforced:
    - Live quantity_on_hand is never consulted for historical COGS, so a
      report is identical no matter how much stock moved since.
    - total_profit == total_revenue - total_cogs.
    - Units with no batch to source them from carry COGS 0 and an
      UNSOURCED_COGS warning; they are never silently dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_engines.fifo import allocate_fifo
from inventory_engines.margin import (
    DailyTrend,
    DataQualityWarning,
    ProductProfitSummary,
    ProfitMarginReport,
    SaleProfit,
    WarningKind,
    summarize_sales,
)
from inventory_engines.replay import BatchReplay
from inventory_kernel.domain.catalog import Product, ProductCatalog
from inventory_kernel.domain.causes import CauseKind
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_adjustment import (
    AdjustmentType,
    InventoryAdjustmentModel,
)
from inventory_kernel.services.adjustment_ledger import AdjustmentLedger
from inventory_kernel.services.batch_store import BatchStore
from inventory_services.quantity_adjuster import batch_layer

logger = get_logger("services.profit_margin")

UNKNOWN_PRODUCT_NAME = "Unknown product"


@dataclass
class _SaleMovement:
    """Ledger rows of one sale, keyed by movement_id."""

    movement_id: UUID
    product_id: str
    rows: list[InventoryAdjustmentModel] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return -sum(row.quantity_adjusted for row in self.rows)

    @property
    def sold_at(self) -> datetime:
        return self.rows[0].created_at

    @property
    def order_ref(self) -> str | None:
        return self.rows[0].cause_ref


class ProfitMarginReportingEngine:
    """
    Profit reports over recorded sales.

    Contract:
        Read-only.  An empty selection returns a zero-valued report.
    """

    def __init__(
        self,
        session: Session,
        catalog: ProductCatalog,
        settings: InventorySettings | None = None,
    ):
        self._catalog = catalog
        self._settings = settings or InventorySettings.with_defaults()
        self._ledger = AdjustmentLedger(session)
        self._batches = BatchStore(session)

    def profit_margin_report(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        product_id: str | None = None,
    ) -> ProfitMarginReport:
        """
        Report every sale recorded in [start, end] (inclusive), optionally for one product.
        """
        if start is not None and end is not None and start > end:
            raise InvalidArgumentError("start", start, "must not be after end")

        movements = self._sale_movements(start, end, product_id)
        by_product: dict[str, list[_SaleMovement]] = {}
        for movement in movements:
            by_product.setdefault(movement.product_id, []).append(movement)

        sales: list[SaleProfit] = []
        for pid in sorted(by_product):
            sales.extend(self._price_product_sales(pid, by_product[pid], end))
        sales.sort(key=lambda s: (s.sold_at, s.product_id, str(s.movement_id)))

        report = summarize_sales(
            sales,
            currency=self._settings.currency,
            start=start,
            end=end,
            product_id=product_id,
        )
        logger.info(
            "profit_margin_report_built",
            extra={
                "product_id": product_id,
                "sale_count": report.sale_count,
                "total_revenue_cents": report.total_revenue.minor_units,
                "total_cogs_cents": report.total_cogs.minor_units,
                "warnings": len(report.warnings),
            },
        )
        return report

    def product_profit_margin(
        self,
        product_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ProfitMarginReport:
        """Report for one catalog product (ProductNotFoundError if unknown)."""
        product = self._catalog.get_product(str(product_id))
        return self.profit_margin_report(start=start, end=end, product_id=product.id)

    def top_products(
        self,
        limit: int = 10,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ProductProfitSummary]:
        return self.profit_margin_report(start, end).top_products(limit)

    def loss_sales(self, start: datetime | None = None, end: datetime | None = None) -> list[SaleProfit]:
        return self.profit_margin_report(start, end).loss_sales()

    def daily_trend(self, start: datetime | None = None, end: datetime | None = None) -> list[DailyTrend]:
        return self.profit_margin_report(start, end).daily_trend()

    # ------------------------------------------------------------------

    def _sale_movements(
        self,
        start: datetime | None,
        end: datetime | None,
        product_id: str | None,
    ) -> list[_SaleMovement]:
        rows = self._ledger.query_by_cause(
            CauseKind.SALE,
            product_id=product_id,
            start=start,
            end=end,
            adjustment_type=AdjustmentType.SUBTRACT,
        )
        movements: dict[UUID, _SaleMovement] = {}
        for row in rows:
            movement = movements.get(row.movement_id)
            if movement is None:
                movement = _SaleMovement(row.movement_id, row.product_id)
                movements[row.movement_id] = movement
            movement.rows.append(row)
        if start is not None or end is not None:
            # A window boundary must not split a movement
            for movement in movements.values():
                movement.rows = [
                    row for row in self._ledger.query_by_movement(movement.movement_id) if row.is_sale
                ]
        return list(movements.values())

    def _price_product_sales(
        self,
        product_id: str,
        movements: list[_SaleMovement],
        end: datetime | None,
    ) -> list[SaleProfit]:
        product = self._catalog.find_product(product_id)
        if product is None:
            logger.warning("sale_for_unknown_product", extra={"product_id": product_id})

        templates = [
            batch_layer(b)
            for b in self._batches.get_batches_for_product(product_id, include_archived=True)
        ]
        replay = BatchReplay(templates)
        pending = {m.movement_id: m for m in movements}
        priced: list[SaleProfit] = []

        for entry in self._ledger.query_by_product(product_id, end=end):
            movement = pending.pop(entry.movement_id, None)
            if movement is not None:
                priced.append(self._price_sale(movement, product, replay))
            replay.apply(entry)
            if not pending:
                break
        return priced

    def _price_sale(
        self,
        movement: _SaleMovement,
        product: Product | None,
        replay: BatchReplay,
    ) -> SaleProfit:
        currency = self._settings.currency
        allocation = allocate_fifo(replay.snapshot(), movement.quantity, currency=currency)

        warnings: list[DataQualityWarning] = []
        if product is None:
            warnings.append(
                DataQualityWarning(
                    kind=WarningKind.UNKNOWN_PRODUCT,
                    product_id=movement.product_id,
                    movement_id=movement.movement_id,
                    quantity=movement.quantity,
                    message="sale references a product missing from the catalog; revenue reported as 0",
                )
            )
        negative = sum(
            min(-row.quantity_adjusted, -row.quantity_after)
            for row in movement.rows
            if row.negative_stock
        )
        if negative:
            warnings.append(
                DataQualityWarning(
                    kind=WarningKind.NEGATIVE_STOCK,
                    product_id=movement.product_id,
                    movement_id=movement.movement_id,
                    quantity=negative,
                    message="sale drove a batch below zero under the negative-stock override",
                )
            )

        return SaleProfit.compute(
            movement_id=movement.movement_id,
            product_id=movement.product_id,
            product_name=product.name if product else UNKNOWN_PRODUCT_NAME,
            sold_at=movement.sold_at,
            quantity=movement.quantity,
            unit_price=product.price if product else Money.zero(currency),
            allocation=allocation,
            order_ref=movement.order_ref,
            warnings=warnings,
        )
