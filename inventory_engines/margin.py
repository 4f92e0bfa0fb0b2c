"""
inventory_engines.margin -- profit and margin arithmetic for sales.

Responsibility:
    Turn (quantity sold, unit price, FIFO allocation) into revenue, COGS,
    profit and margin per sale, and aggregate sales into a report with
    per-product and per-day roll-ups.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reporting service
    supplies the allocations (from ledger replay); this module only does
    arithmetic.

Invariants enforced:
    - profit == revenue - cogs, per sale and in aggregate.
    - margin_pct == profit / revenue * 100 when revenue > 0, else 0.
    - average_margin == total_profit / total_revenue * 100, i.e. the
      revenue-weighted mean of per-sale margins (never a simple mean).
    - Units that no batch could source carry zero cost AND a
      DataQualityWarning; they are never silently absorbed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from inventory_engines.fifo import Allocation, AllocationResult
from inventory_kernel.domain.money import Money

_HUNDRED = Decimal(100)


class WarningKind(str, Enum):
    UNSOURCED_COGS = "unsourced_cogs"
    NEGATIVE_STOCK = "negative_stock"
    UNKNOWN_PRODUCT = "unknown_product"


@dataclass(frozen=True, slots=True)
class DataQualityWarning:
    """Non-fatal reporting flag; returned with the figures, never raised."""

    kind: WarningKind
    product_id: str
    message: str
    movement_id: UUID | None = None
    quantity: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "product_id": self.product_id,
            "movement_id": str(self.movement_id) if self.movement_id else None,
            "quantity": self.quantity,
            "message": self.message,
        }


def margin_pct(profit: Money, revenue: Money) -> Decimal:
    """Exact percentage; 0 when there is no revenue."""
    if revenue.minor_units <= 0:
        return Decimal(0)
    return Decimal(profit.minor_units) / Decimal(revenue.minor_units) * _HUNDRED


def _mean(total: Money, count: int) -> Money:
    if count == 0:
        return Money.zero(total.currency)
    cents = (Decimal(total.minor_units) / count).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return Money(int(cents), total.currency)


@dataclass(frozen=True, slots=True)
class SaleProfit:
    """Revenue, COGS and profit for one sale movement of one product."""

    movement_id: UUID
    product_id: str
    product_name: str
    sold_at: datetime
    quantity: int
    unit_price: Money
    revenue: Money
    cogs: Money
    profit: Money
    margin_pct: Decimal
    allocations: tuple[Allocation, ...] = ()
    unsourced_quantity: int = 0
    order_ref: str | None = None
    warnings: tuple[DataQualityWarning, ...] = ()

    @classmethod
    def compute(
        cls,
        *,
        movement_id: UUID,
        product_id: str,
        product_name: str,
        sold_at: datetime,
        quantity: int,
        unit_price: Money,
        allocation: AllocationResult,
        order_ref: str | None = None,
        warnings: Sequence[DataQualityWarning] = (),
    ) -> SaleProfit:
        """
        Price a sale against its FIFO allocation.

        ``quantity`` is taken as an absolute unit count; revenue is
        unit_price * quantity.  A short allocation adds an UNSOURCED_COGS
        warning for the missing units.
        """
        units = abs(quantity)
        revenue = unit_price * units
        cogs = allocation.total_cost
        if cogs.currency != revenue.currency:
            raise ValueError(
                f"Cost currency {cogs.currency} differs from price currency {revenue.currency}"
            )
        profit = revenue - cogs
        flags = list(warnings)
        if allocation.unfulfilled:
            flags.append(
                DataQualityWarning(
                    kind=WarningKind.UNSOURCED_COGS,
                    product_id=product_id,
                    movement_id=movement_id,
                    quantity=allocation.unfulfilled,
                    message=(
                        f"{allocation.unfulfilled} of {units} units had no batch "
                        "to source cost from; COGS for them is reported as 0"
                    ),
                )
            )
        return cls(
            movement_id=movement_id,
            product_id=product_id,
            product_name=product_name,
            sold_at=sold_at,
            quantity=units,
            unit_price=unit_price,
            revenue=revenue,
            cogs=cogs,
            profit=profit,
            margin_pct=margin_pct(profit, revenue),
            allocations=allocation.allocations,
            unsourced_quantity=allocation.unfulfilled,
            order_ref=order_ref,
            warnings=tuple(flags),
        )

    @property
    def is_loss(self) -> bool:
        return self.profit.is_negative

    @property
    def is_flagged(self) -> bool:
        return bool(self.warnings)

    @property
    def profit_per_unit(self) -> Decimal:
        if self.quantity == 0:
            return Decimal(0)
        return self.profit.amount / self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "movement_id": str(self.movement_id),
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sold_at": self.sold_at.isoformat(),
            "order_ref": self.order_ref,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price.minor_units,
            "revenue_cents": self.revenue.minor_units,
            "cogs_cents": self.cogs.minor_units,
            "profit_cents": self.profit.minor_units,
            "margin_pct": str(self.margin_pct),
            "unsourced_quantity": self.unsourced_quantity,
            "allocations": [a.to_dict() for a in self.allocations],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True, slots=True)
class ProductProfitSummary:
    product_id: str
    product_name: str
    sale_count: int
    quantity_sold: int
    revenue: Money
    cogs: Money
    profit: Money
    margin_pct: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sale_count": self.sale_count,
            "quantity_sold": self.quantity_sold,
            "revenue_cents": self.revenue.minor_units,
            "cogs_cents": self.cogs.minor_units,
            "profit_cents": self.profit.minor_units,
            "margin_pct": str(self.margin_pct),
        }


@dataclass(frozen=True, slots=True)
class DailyTrend:
    day: date
    sale_count: int
    quantity_sold: int
    revenue: Money
    cogs: Money
    profit: Money
    margin_pct: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "sale_count": self.sale_count,
            "quantity_sold": self.quantity_sold,
            "revenue_cents": self.revenue.minor_units,
            "cogs_cents": self.cogs.minor_units,
            "profit_cents": self.profit.minor_units,
            "margin_pct": str(self.margin_pct),
        }


@dataclass(frozen=True, slots=True)
class ProfitMarginReport:
    """
    Aggregated profit report over a set of sales.

    Contract:
        An empty report has zero aggregates; it is not an error.

    Guarantees:
        - total_profit == total_revenue - total_cogs.
        - average_margin is revenue-weighted.
        - ``warnings`` collects every sale's flags plus report-level flags.
    """

    sales: tuple[SaleProfit, ...]
    total_revenue: Money
    total_cogs: Money
    total_profit: Money
    average_margin: Decimal
    total_quantity_sold: int
    warnings: tuple[DataQualityWarning, ...] = ()
    start: datetime | None = None
    end: datetime | None = None
    product_id: str | None = None

    @property
    def sale_count(self) -> int:
        return len(self.sales)

    @property
    def currency(self) -> str:
        return self.total_revenue.currency

    @property
    def has_data_quality_issues(self) -> bool:
        return bool(self.warnings)

    @property
    def average_sale_amount(self) -> Money:
        return _mean(self.total_revenue, self.sale_count)

    @property
    def average_profit_per_sale(self) -> Money:
        return _mean(self.total_profit, self.sale_count)

    @property
    def average_profit_per_unit(self) -> Decimal:
        if self.total_quantity_sold == 0:
            return Decimal(0)
        return self.total_profit.amount / self.total_quantity_sold

    def loss_sales(self) -> list[SaleProfit]:
        """Sales with negative profit, biggest loss first."""
        losses = [s for s in self.sales if s.is_loss]
        return sorted(losses, key=lambda s: (s.profit.minor_units, s.sold_at))

    def highest_margin_sales(self, limit: int = 10) -> list[SaleProfit]:
        ranked = sorted(self.sales, key=lambda s: (-s.margin_pct, s.sold_at))
        return ranked[:limit]

    def by_product(self) -> list[ProductProfitSummary]:
        grouped: dict[str, list[SaleProfit]] = {}
        for sale in self.sales:
            grouped.setdefault(sale.product_id, []).append(sale)

        summaries = []
        for product_id, sales in grouped.items():
            revenue = sum((s.revenue for s in sales), Money.zero(self.currency))
            cogs = sum((s.cogs for s in sales), Money.zero(self.currency))
            profit = revenue - cogs
            summaries.append(
                ProductProfitSummary(
                    product_id=product_id,
                    product_name=sales[0].product_name,
                    sale_count=len(sales),
                    quantity_sold=sum(s.quantity for s in sales),
                    revenue=revenue,
                    cogs=cogs,
                    profit=profit,
                    margin_pct=margin_pct(profit, revenue),
                )
            )
        return summaries

    def top_products(self, limit: int = 10) -> list[ProductProfitSummary]:
        """Most profitable products first."""
        ranked = sorted(self.by_product(), key=lambda p: (-p.profit.minor_units, p.product_id))
        return ranked[:limit]

    def daily_trend(self) -> list[DailyTrend]:
        """Per-UTC-day totals, oldest day first."""
        grouped: dict[date, list[SaleProfit]] = {}
        for sale in self.sales:
            grouped.setdefault(sale.sold_at.date(), []).append(sale)

        trend = []
        for day in sorted(grouped):
            sales = grouped[day]
            revenue = sum((s.revenue for s in sales), Money.zero(self.currency))
            cogs = sum((s.cogs for s in sales), Money.zero(self.currency))
            profit = revenue - cogs
            trend.append(
                DailyTrend(
                    day=day,
                    sale_count=len(sales),
                    quantity_sold=sum(s.quantity for s in sales),
                    revenue=revenue,
                    cogs=cogs,
                    profit=profit,
                    margin_pct=margin_pct(profit, revenue),
                )
            )
        return trend

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "product_id": self.product_id,
            "currency": self.currency,
            "sale_count": self.sale_count,
            "total_quantity_sold": self.total_quantity_sold,
            "total_revenue_cents": self.total_revenue.minor_units,
            "total_cogs_cents": self.total_cogs.minor_units,
            "total_profit_cents": self.total_profit.minor_units,
            "average_margin": str(self.average_margin),
            "sales": [s.to_dict() for s in self.sales],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def summarize_sales(
    sales: Iterable[SaleProfit],
    *,
    currency: str = "USD",
    start: datetime | None = None,
    end: datetime | None = None,
    product_id: str | None = None,
    extra_warnings: Sequence[DataQualityWarning] = (),
) -> ProfitMarginReport:
    """Aggregate sales into a report.  No sales -> zero-valued report."""
    ordered = tuple(sales)
    total_revenue = Money.zero(currency)
    total_cogs = Money.zero(currency)
    warnings: list[DataQualityWarning] = list(extra_warnings)
    for sale in ordered:
        total_revenue = total_revenue + sale.revenue
        total_cogs = total_cogs + sale.cogs
        warnings.extend(sale.warnings)
    total_profit = total_revenue - total_cogs

    return ProfitMarginReport(
        sales=ordered,
        total_revenue=total_revenue,
        total_cogs=total_cogs,
        total_profit=total_profit,
        average_margin=margin_pct(total_profit, total_revenue),
        total_quantity_sold=sum(s.quantity for s in ordered),
        warnings=tuple(warnings),
        start=start,
        end=end,
        product_id=product_id,
    )
