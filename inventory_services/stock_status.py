"""
StockStatusCalculator -- read-only stock views over live batches.

Product stock is always the sum of the product's live batch quantities; the
classification and reorder arithmetic live in inventory_engines.stock_status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.orm import Session

from inventory_config import InventorySettings
from inventory_engines.stock_status import (
    StockStatus,
    classify_stock,
    effective_reorder_point,
    needs_reorder,
    suggested_reorder_quantity,
)
from inventory_kernel.domain.catalog import Product, ProductCatalog
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.batch_selector import BatchSelector
from inventory_kernel.selectors.sequence import QuerySequence
from inventory_kernel.services.batch_store import BatchStore

logger = get_logger("services.stock_status")


@dataclass(frozen=True, slots=True)
class ReorderItem:
    product: Product
    current_stock: int
    reorder_point: int
    suggested_quantity: int
    status: StockStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product.id,
            "product_name": self.product.name,
            "current_stock": self.current_stock,
            "reorder_point": self.reorder_point,
            "suggested_quantity": self.suggested_quantity,
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class BatchStatistics:
    total_batches: int
    batches_with_stock: int
    batches_out_of_stock: int
    expiring_soon: int
    expired: int
    total_value: Money
    average_cost: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_batches": self.total_batches,
            "batches_with_stock": self.batches_with_stock,
            "batches_out_of_stock": self.batches_out_of_stock,
            "expiring_soon": self.expiring_soon,
            "expired": self.expired,
            "total_value_cents": self.total_value.minor_units,
            "average_cost_cents": self.average_cost.minor_units,
        }


@dataclass(frozen=True, slots=True)
class ProductValuation:
    """On-hand stock of one product at batch cost and at retail price."""

    product: Product
    quantity_on_hand: int
    cost_value: Money
    retail_value: Money

    @property
    def potential_profit(self) -> Money:
        return self.retail_value - self.cost_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product.id,
            "product_name": self.product.name,
            "quantity_on_hand": self.quantity_on_hand,
            "cost_value_cents": self.cost_value.minor_units,
            "retail_value_cents": self.retail_value.minor_units,
            "potential_profit_cents": self.potential_profit.minor_units,
        }


class StockStatusCalculator:
    """Stock status, expiry views, reorder list and valuation."""

    def __init__(
        self,
        session: Session,
        catalog: ProductCatalog,
        settings: InventorySettings | None = None,
        clock: Clock | None = None,
    ):
        self._catalog = catalog
        self._settings = settings or InventorySettings.with_defaults()
        self._clock = clock or SystemClock()
        self._batches = BatchStore(session, self._clock)
        self._selector = BatchSelector(session)

    def _product(self, product: Product | str) -> Product:
        if isinstance(product, Product):
            return product
        return self._catalog.get_product(str(product))

    def current_stock(self, product: Product | str) -> int:
        return self._batches.total_on_hand(self._product(product).id)

    def stock_status(self, product: Product | str) -> StockStatus:
        """OUT_OF_STOCK at <= 0, LOW_STOCK below the reorder point, else IN_STOCK."""
        item = self._product(product)
        return classify_stock(
            self._batches.total_on_hand(item.id),
            item.reorder_point,
            self._settings.default_low_stock_threshold,
        )

    def expiring_batches(self, within_days: int | None = None) -> QuerySequence[ProductBatchModel]:
        days = self._settings.expiring_report_days if within_days is None else within_days
        if days < 0:
            raise InvalidArgumentError("within_days", within_days, "cannot be negative")
        today = self._clock.today()
        return self._selector.expiring(today, today + timedelta(days=days))

    def expired_batches(self) -> QuerySequence[ProductBatchModel]:
        return self._selector.expired(self._clock.today())

    def reorder_list(self) -> list[ReorderItem]:
        """Products below their reorder point, lowest stock first."""
        stock = self._selector.stock_by_product()
        threshold = self._settings.default_low_stock_threshold
        items = []
        for product in self._catalog.list_products():
            current = stock.get(product.id, 0)
            if not needs_reorder(current, product.reorder_point, threshold):
                continue
            reorder_point = effective_reorder_point(product.reorder_point, threshold)
            items.append(
                ReorderItem(
                    product=product,
                    current_stock=current,
                    reorder_point=reorder_point,
                    suggested_quantity=suggested_reorder_quantity(
                        current, reorder_point, self._settings.default_reorder_quantity
                    ),
                    status=classify_stock(current, product.reorder_point, threshold),
                )
            )
        items.sort(key=lambda item: (item.current_stock, item.product.id))
        logger.info("reorder_list_built", extra={"items": len(items)})
        return items

    def batch_statistics(self) -> BatchStatistics:
        counts = self._selector.counts()
        today = self._clock.today()
        currency = self._settings.currency
        if counts.total_batches:
            average = (
                Decimal(counts.purchase_cost_sum_cents) / counts.total_batches
            ).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        else:
            average = Decimal(0)
        return BatchStatistics(
            total_batches=counts.total_batches,
            batches_with_stock=counts.batches_with_stock,
            batches_out_of_stock=counts.batches_out_of_stock,
            expiring_soon=self._selector.expiring(
                today, today + timedelta(days=self._settings.expiring_soon_days)
            ).count(),
            expired=self._selector.expired(today).count(),
            total_value=Money(counts.stock_value_cents, currency),
            average_cost=Money(int(average), currency),
        )

    def inventory_valuation(self) -> list[ProductValuation]:
        """Per-product valuation of stocked batches; unknown products are skipped."""
        quantities: dict[str, int] = {}
        costs: dict[str, Money] = {}
        currency = self._settings.currency
        for batch in self._selector.stocked_batches():
            quantities[batch.product_id] = quantities.get(batch.product_id, 0) + batch.quantity_on_hand
            costs[batch.product_id] = costs.get(batch.product_id, Money.zero(currency)) + batch.stock_value

        valuations = []
        for product_id in sorted(quantities):
            product = self._catalog.find_product(product_id)
            if product is None:
                logger.warning("valuation_unknown_product", extra={"product_id": product_id})
                continue
            valuations.append(
                ProductValuation(
                    product=product,
                    quantity_on_hand=quantities[product_id],
                    cost_value=costs[product_id],
                    retail_value=product.price * quantities[product_id],
                )
            )
        return valuations
