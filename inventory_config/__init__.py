"""Inventory settings: schema and YAML loading."""

from inventory_config.loader import get_active_settings, load_catalog, load_settings
from inventory_config.settings import InventorySettings

__all__ = ["InventorySettings", "get_active_settings", "load_catalog", "load_settings"]
