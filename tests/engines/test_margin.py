"""Profit-margin arithmetic and report aggregation."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from inventory_engines.fifo import BatchLayer, allocate_fifo
from inventory_engines.margin import (
    SaleProfit,
    WarningKind,
    margin_pct,
    summarize_sales,
)
from inventory_kernel.domain.money import Money

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def _layers(*specs):
    return [
        BatchLayer(uuid4(), f"B{i}", T0 - timedelta(days=10 - i), Money.of(cost), qty)
        for i, (qty, cost) in enumerate(specs)
    ]


def _sale(quantity, price, layers, product_id="widget", sold_at=T0):
    return SaleProfit.compute(
        movement_id=uuid4(),
        product_id=product_id,
        product_name=product_id.title(),
        sold_at=sold_at,
        quantity=quantity,
        unit_price=Money.of(price),
        allocation=allocate_fifo(layers, quantity, currency="USD"),
    )


class TestMarginPct:

    def test_exact_ratio(self):
        assert margin_pct(Money.of("145.00"), Money.of("250.00")) == Decimal(58)

    def test_zero_revenue_is_zero(self):
        assert margin_pct(Money.of("-5.00"), Money.zero()) == Decimal(0)


class TestSaleProfit:

    def test_end_to_end_figures(self):
        sale = _sale(25, "10.00", _layers((20, "4.00"), (20, "5.00")))
        assert sale.revenue == Money.of("250.00")
        assert sale.cogs == Money.of("105.00")
        assert sale.profit == Money.of("145.00")
        assert sale.margin_pct == Decimal(58)
        assert not sale.is_flagged

    def test_unsourced_units_flagged_with_zero_cost(self):
        sale = _sale(10, "2.00", _layers((4, "1.00")))
        assert sale.cogs == Money.of("4.00")
        assert sale.unsourced_quantity == 6
        assert [w.kind for w in sale.warnings] == [WarningKind.UNSOURCED_COGS]
        assert sale.warnings[0].quantity == 6

    def test_loss_sale(self):
        sale = _sale(2, "3.00", _layers((5, "4.00")))
        assert sale.is_loss
        assert sale.profit == Money.of("-2.00")


class TestSummarize:

    def test_empty_report_is_zero(self):
        report = summarize_sales([], currency="USD")
        assert report.sale_count == 0
        assert report.total_revenue == Money.zero()
        assert report.average_margin == Decimal(0)
        assert report.average_sale_amount == Money.zero()

    def test_aggregate_is_revenue_weighted(self):
        big = _sale(10, "10.00", _layers((10, "5.00")))
        small = _sale(1, "10.00", _layers((1, "9.00")))
        report = summarize_sales([big, small], currency="USD")

        assert report.total_revenue == Money.of("110.00")
        assert report.total_cogs == Money.of("59.00")
        assert report.total_profit == report.total_revenue - report.total_cogs
        expected = Decimal(5100) / Decimal(11000) * 100
        assert report.average_margin == expected
        assert report.average_margin != (big.margin_pct + small.margin_pct) / 2

    def test_top_products_and_daily_trend(self):
        w1 = _sale(5, "10.00", _layers((10, "4.00")), "widget", T0)
        g1 = _sale(1, "24.50", _layers((5, "11.00")), "gadget", T0 + timedelta(days=1))
        w2 = _sale(3, "10.00", _layers((10, "4.00")), "widget", T0 + timedelta(days=1))
        report = summarize_sales([w1, g1, w2], currency="USD")

        top = report.top_products()
        assert [p.product_id for p in top] == ["widget", "gadget"]
        assert top[0].quantity_sold == 8
        assert top[0].profit == Money.of("48.00")

        trend = report.daily_trend()
        assert [t.day for t in trend] == [T0.date(), (T0 + timedelta(days=1)).date()]
        assert trend[1].sale_count == 2

    def test_warnings_collected(self):
        sale = _sale(3, "1.00", _layers())
        report = summarize_sales([sale], currency="USD")
        assert report.has_data_quality_issues
        assert report.to_dict()["warnings"][0]["kind"] == "unsourced_cogs"
