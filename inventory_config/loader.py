"""
Settings Loader (``inventory_config.loader``).

Reads inventory settings from a YAML file.  The file may hold the settings
at top level or under an ``inventory:`` key:

    inventory:
      allow_negative_stock: false
      default_low_stock_threshold: 20

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys / invalid values  -> ``ValueError``.
* Catalog rows missing ``id``  -> ``KeyError``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from inventory_config.settings import InventorySettings
from inventory_kernel.domain.catalog import InMemoryProductCatalog, Product
from inventory_kernel.domain.money import Money
from inventory_kernel.logging_config import get_logger

logger = get_logger("config.loader")

SETTINGS_PATH_ENV = "INVENTORY_SETTINGS_PATH"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_settings(path: Path | str) -> InventorySettings:
    path = Path(path)
    data = load_yaml_file(path)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
    section = data.get("inventory", data)
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'inventory' must be a mapping")
    logger.info("inventory_settings_file_loaded", extra={"path": str(path)})
    return InventorySettings.from_dict(section)


def get_active_settings(path: Path | str | None = None) -> InventorySettings:
    """
    Settings from ``path``, else from $INVENTORY_SETTINGS_PATH, else defaults.
    """
    source = path or os.environ.get(SETTINGS_PATH_ENV)
    if source:
        return load_settings(source)
    return InventorySettings.with_defaults()


def load_catalog(path: Path | str, currency: str = "USD") -> InMemoryProductCatalog:
    """
    Product catalog from a YAML ``products:`` list.

        products:
          - id: widget
            name: Widget
            price: "10.00"
            reorder_point: 15
    """
    path = Path(path)
    data = load_yaml_file(path)
    rows = data.get("products", []) if isinstance(data, dict) else None
    if not isinstance(rows, list):
        raise ValueError(f"{path}: 'products' must be a list")
    catalog = InMemoryProductCatalog()
    for row in rows:
        catalog.add(
            Product(
                id=str(row["id"]),
                name=row.get("name", str(row["id"])),
                price=Money.of(str(row.get("price", "0")), currency),
                reorder_point=row.get("reorder_point"),
                requires_batch_tracking=row.get("requires_batch_tracking", True),
                sku=row.get("sku"),
            )
        )
    logger.info("product_catalog_loaded", extra={"path": str(path), "products": len(catalog)})
    return catalog
