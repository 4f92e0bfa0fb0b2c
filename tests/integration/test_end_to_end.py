"""
End-to-end: receive stock, sell across batches, report COGS and margin,
then audit the ledger.  Also runs the reporting CLI against a fresh SQLite
file in a subprocess.
"""

import json
import subprocess
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

from inventory_engines.stock_status import StockStatus
from inventory_kernel.domain.causes import Damage, Receiving
from inventory_kernel.domain.money import Money

ROOT = Path(__file__).resolve().parents[2]
CLI = ROOT / "scripts" / "inventory_report.py"


class TestBatchToMarginFlow:

    def test_two_batch_sale(self, service, deterministic_clock, test_actor_id):
        service.create_batch(
            "widget", "BATCH-A", Money.of("4.00"), 20, test_actor_id, cause=Receiving("po-1")
        )
        deterministic_clock.advance(3600)
        service.create_batch(
            "widget", "BATCH-B", Money.of("5.00"), 20, test_actor_id,
            expiration_date=date(2024, 2, 1), cause=Receiving("po-2"),
        )
        deterministic_clock.advance(3600)

        sale = service.record_sale("widget", 25, "ord-1", test_actor_id)

        assert [e.quantity_adjusted for e in sale.entries] == [-20, -5]
        assert service.current_stock("widget") == 15
        assert service.stock_status("widget") is StockStatus.LOW_STOCK

        report = service.profit_margin_report()
        assert report.total_revenue == Money.of("250.00")
        assert report.total_cogs == Money.of("105.00")
        assert report.total_profit == Money.of("145.00")
        assert report.average_margin == Decimal(58)

        history = list(service.adjustment_history("widget"))
        assert [e.reason for e in history] == [
            "Stock In (PO: po-1)",
            "Stock In (PO: po-2)",
            "Sale (Order: ord-1)",
            "Sale (Order: ord-1)",
        ]
        assert service.verify_replay("widget")

    def test_shrinkage_and_reorder(self, service, make_batch, test_actor_id):
        batch = make_batch("B-1", cost="11.00", quantity=8, product_id="gadget")
        service.subtract_quantity("gadget", 2, test_actor_id, cause=Damage("crushed"))
        service.record_sale("gadget", 3, "ord-9", test_actor_id)

        [item] = [i for i in service.reorder_list() if i.product.id == "gadget"]
        assert item.current_stock == 3
        assert item.suggested_quantity == 50

        service.record_sale("gadget", 3, "ord-10", test_actor_id)
        service.delete_batch(batch.id, test_actor_id)
        assert service.stock_status("gadget") is StockStatus.OUT_OF_STOCK

        report = service.product_profit_margin("gadget")
        assert report.sale_count == 2
        assert report.total_cogs == Money.of("66.00")
        assert report.total_revenue == Money.of("147.00")


class TestReportCli:

    def _run(self, *args):
        return subprocess.run(
            [sys.executable, str(CLI), *args],
            capture_output=True,
            text=True,
            cwd=ROOT,
            timeout=60,
        )

    def test_demo_then_reports(self, tmp_path):
        db_url = f"sqlite:///{tmp_path / 'demo.db'}"
        catalog = tmp_path / "products.yaml"
        catalog.write_text(
            "products:\n"
            "  - {id: widget, name: Widget, price: '10.00', reorder_point: 15}\n"
            "  - {id: gadget, name: Gadget, price: '24.50', requires_batch_tracking: false}\n"
        )

        demo = self._run("--db-url", db_url, "demo")
        assert demo.returncode == 0, demo.stderr
        assert "Demo data created." in demo.stdout

        verify = self._run("--db-url", db_url, "--catalog", str(catalog), "verify")
        assert verify.returncode == 0, verify.stderr
        assert "widget: OK" in verify.stdout

        profit = self._run("--db-url", db_url, "--catalog", str(catalog), "--json", "profit", "--product", "widget")
        assert profit.returncode == 0, profit.stderr
        assert '"total_cogs_cents": 10500' in profit.stdout

        stock = self._run("--db-url", db_url, "--catalog", str(catalog), "--json", "stock")
        assert stock.returncode == 0, stock.stderr
        rows = {row["product"]: row for row in json.loads(stock.stdout)}
        assert rows["widget"]["on_hand"] == 15
        assert rows["widget"]["batch_tracked"] is True
        assert rows["gadget"]["batch_tracked"] is False

    def test_catalog_required(self, tmp_path):
        result = self._run("--db-url", f"sqlite:///{tmp_path / 'x.db'}", "stock")
        assert result.returncode == 2
        assert "--catalog is required" in result.stderr
