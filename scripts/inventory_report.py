#!/usr/bin/env python3
"""
Inventory reports from the command line.

Connects to the database named by --db-url (or $DATABASE_URL), reads the
product catalog from a YAML file and prints stock, reorder, expiry and
profit views.  ``demo`` seeds a small two-batch scenario into a fresh
database so the other commands have something to show.

Usage:
    python3 scripts/inventory_report.py --catalog products.yaml stock
    python3 scripts/inventory_report.py --catalog products.yaml profit --product widget
    python3 scripts/inventory_report.py --db-url sqlite:///demo.db demo
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_date(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    from inventory_kernel.db.engine import get_database_url

    p = argparse.ArgumentParser(description="Inventory batch, stock and profit reports")
    p.add_argument("--db-url", default=get_database_url(), help="Database URL")
    p.add_argument("--catalog", type=Path, help="YAML file with a 'products:' list")
    p.add_argument("--settings", type=Path, help="YAML settings file (else $INVENTORY_SETTINGS_PATH)")
    p.add_argument("--json", action="store_true", help="Print JSON instead of tables")
    p.add_argument("-v", "--verbose", action="store_true", help="Structured logs on stderr")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("stock", help="Stock status per product")
    sub.add_parser("reorder", help="Products below their reorder point")
    expiring = sub.add_parser("expiring", help="Batches expiring soon")
    expiring.add_argument("--days", type=int, default=None)
    sub.add_parser("stats", help="Batch statistics and valuation")
    profit = sub.add_parser("profit", help="Profit-margin report")
    profit.add_argument("--start", type=_parse_date)
    profit.add_argument("--end", type=_parse_date)
    profit.add_argument("--product")
    profit.add_argument("--top", type=int, default=10)
    verify = sub.add_parser("verify", help="Replay the ledger and compare with live batches")
    verify.add_argument("product", nargs="?")
    sub.add_parser("demo", help="Create tables and seed a demo scenario")
    return p.parse_args(argv)


def _money(m) -> str:
    return f"{m.amount:>10,.2f}"


def _demo_catalog():
    from inventory_kernel.domain.catalog import InMemoryProductCatalog, Product
    from inventory_kernel.domain.money import Money

    return InMemoryProductCatalog(
        [
            Product(id="widget", name="Widget", price=Money.of("10.00"), reorder_point=15),
            Product(id="gadget", name="Gadget", price=Money.of("24.50")),
        ]
    )


def _seed_demo(service) -> None:
    from datetime import date, timedelta

    from inventory_kernel.domain.money import Money

    service.create_batch("widget", "BATCH-A", Money.of("4.00"), 20, "demo")
    service.create_batch(
        "widget", "BATCH-B", Money.of("5.00"), 20, "demo",
        expiration_date=date.today() + timedelta(days=20),
    )
    service.create_batch("gadget", "G-001", Money.of("11.00"), 8, "demo")
    service.record_sale("widget", 25, "ORD-1001", "demo")
    service.record_sale("gadget", 3, "ORD-1002", "demo")


def _print_rows(rows: list[dict], as_json: bool) -> None:
    if as_json:
        print(json.dumps(rows, indent=2, default=str))
        return
    if not rows:
        print("  (nothing to show)")
        return
    keys = list(rows[0])
    widths = {k: max(len(k), *(len(str(r[k])) for r in rows)) for k in keys}
    print("  " + "  ".join(k.ljust(widths[k]) for k in keys))
    for row in rows:
        print("  " + "  ".join(str(row[k]).ljust(widths[k]) for k in keys))


def _print_report(report, top: int, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return
    print(f"  Sales:          {report.sale_count}")
    print(f"  Units sold:     {report.total_quantity_sold}")
    print(f"  Revenue:        {_money(report.total_revenue)}")
    print(f"  COGS:           {_money(report.total_cogs)}")
    print(f"  Profit:         {_money(report.total_profit)}")
    print(f"  Average margin: {report.average_margin:.2f}%")
    print()
    print("  Top products")
    _print_rows(
        [
            {
                "product": s.product_name,
                "sold": s.quantity_sold,
                "revenue": _money(s.revenue),
                "profit": _money(s.profit),
                "margin": f"{s.margin_pct:.2f}%",
            }
            for s in report.top_products(top)
        ],
        False,
    )
    if report.warnings:
        print()
        print("  Data quality warnings")
        for warning in report.warnings:
            print(f"  - [{warning.kind.value}] {warning.product_id}: {warning.message}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from inventory_config import get_active_settings, load_catalog
    from inventory_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from inventory_kernel.db.immutability import register_immutability_listeners
    from inventory_kernel.exceptions import InventoryKernelError
    from inventory_kernel.logging_config import configure_logging
    from inventory_services import InventoryService

    if args.verbose:
        configure_logging(level=logging.DEBUG)
    else:
        logging.disable(logging.CRITICAL)

    settings = get_active_settings(args.settings)
    if args.catalog:
        catalog = load_catalog(args.catalog, settings.currency)
    elif args.command == "demo":
        catalog = _demo_catalog()
    else:
        print("  ERROR: --catalog is required for this command", file=sys.stderr)
        return 2

    try:
        init_engine_from_url(args.db_url, echo=False)
    except Exception as exc:
        print(f"  ERROR: Could not connect: {exc}", file=sys.stderr)
        return 1

    register_immutability_listeners()
    session = get_session()
    service = InventoryService(session, catalog, settings)

    try:
        if args.command == "demo":
            create_tables()
            _seed_demo(service)
            print("  Demo data created.")
            _print_report(service.profit_margin_report(), 10, args.json)

        elif args.command == "stock":
            _print_rows(
                [
                    {
                        "product": p.id,
                        "name": p.name,
                        "on_hand": service.current_stock(p),
                        "status": service.stock_status(p).value,
                        "batch_tracked": p.requires_batch_tracking,
                    }
                    for p in catalog.list_products()
                ],
                args.json,
            )

        elif args.command == "reorder":
            _print_rows([item.to_dict() for item in service.reorder_list()], args.json)

        elif args.command == "expiring":
            _print_rows(
                [
                    {
                        "product": b.product_id,
                        "batch": b.batch_number,
                        "expires": b.expiration_date.isoformat(),
                        "on_hand": b.quantity_on_hand,
                    }
                    for b in service.expiring_batches(args.days)
                ],
                args.json,
            )

        elif args.command == "stats":
            stats = service.batch_statistics()
            _print_rows([stats.to_dict()], args.json)
            print()
            _print_rows([v.to_dict() for v in service.inventory_valuation()], args.json)

        elif args.command == "profit":
            report = service.profit_margin_report(args.start, args.end, args.product)
            _print_report(report, args.top, args.json)

        elif args.command == "verify":
            product_ids = [args.product] if args.product else [p.id for p in catalog.list_products()]
            for product_id in product_ids:
                replayed = service.verify_replay(product_id)
                print(f"  {product_id}: OK ({len(replayed)} batches)")

    except InventoryKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
