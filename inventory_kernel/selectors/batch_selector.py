"""
Module: inventory_kernel.selectors.batch_selector
Responsibility: Read-only cross-product batch queries used by the stock-status
    views (expiring, expired, stock totals, batch statistics).
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Archived batches are never part of a live view.
    - Product stock is derived by summing batch quantities; nothing else is
      consulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import case, func, select

from inventory_kernel.models.product_batch import ProductBatchModel
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.sequence import QuerySequence


@dataclass(frozen=True, slots=True)
class BatchCounts:
    total_batches: int
    batches_with_stock: int
    batches_out_of_stock: int
    stock_value_cents: int
    purchase_cost_sum_cents: int


class BatchSelector(BaseSelector):
    """Live-batch queries across all products."""

    def _live(self):
        return select(ProductBatchModel).where(ProductBatchModel.archived_at.is_(None))

    def expiring(self, today: date, until: date) -> QuerySequence[ProductBatchModel]:
        """Stocked batches expiring in [today, until], soonest first."""
        stmt = (
            self._live()
            .where(
                ProductBatchModel.expiration_date.is_not(None),
                ProductBatchModel.expiration_date >= today,
                ProductBatchModel.expiration_date <= until,
                ProductBatchModel.quantity_on_hand > 0,
            )
            .order_by(
                ProductBatchModel.expiration_date.asc(),
                ProductBatchModel.created_at.asc(),
                ProductBatchModel.id.asc(),
            )
        )
        return QuerySequence(self.session, stmt)

    def expired(self, today: date) -> QuerySequence[ProductBatchModel]:
        """Stocked batches already past expiration, most recently expired first."""
        stmt = (
            self._live()
            .where(
                ProductBatchModel.expiration_date.is_not(None),
                ProductBatchModel.expiration_date < today,
                ProductBatchModel.quantity_on_hand > 0,
            )
            .order_by(
                ProductBatchModel.expiration_date.desc(),
                ProductBatchModel.created_at.asc(),
                ProductBatchModel.id.asc(),
            )
        )
        return QuerySequence(self.session, stmt)

    def stock_by_product(self) -> dict[str, int]:
        stmt = (
            select(ProductBatchModel.product_id, func.sum(ProductBatchModel.quantity_on_hand))
            .where(ProductBatchModel.archived_at.is_(None))
            .group_by(ProductBatchModel.product_id)
        )
        return {product_id: int(total or 0) for product_id, total in self.session.execute(stmt)}

    def stocked_batches(self, product_id: str | None = None) -> QuerySequence[ProductBatchModel]:
        stmt = self._live().where(ProductBatchModel.quantity_on_hand > 0)
        if product_id is not None:
            stmt = stmt.where(ProductBatchModel.product_id == str(product_id))
        stmt = stmt.order_by(
            ProductBatchModel.product_id.asc(),
            ProductBatchModel.created_at.asc(),
            ProductBatchModel.id.asc(),
        )
        return QuerySequence(self.session, stmt)

    def counts(self) -> BatchCounts:
        stocked = ProductBatchModel.quantity_on_hand > 0
        stmt = select(
            func.count(ProductBatchModel.id),
            func.coalesce(func.sum(case((stocked, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case((ProductBatchModel.quantity_on_hand <= 0, 1), else_=0)), 0
            ),
            func.coalesce(
                func.sum(
                    case(
                        (
                            stocked,
                            ProductBatchModel.quantity_on_hand
                            * ProductBatchModel.purchase_cost_cents,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(func.sum(ProductBatchModel.purchase_cost_cents), 0),
        ).where(ProductBatchModel.archived_at.is_(None))
        total, with_stock, without_stock, value, cost_sum = self.session.execute(stmt).one()
        return BatchCounts(
            total_batches=int(total),
            batches_with_stock=int(with_stock),
            batches_out_of_stock=int(without_stock),
            stock_value_cents=int(value),
            purchase_cost_sum_cents=int(cost_sum),
        )
