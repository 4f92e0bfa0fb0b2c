"""
Inventory Settings Schema.

Policy values the inventory core reads from the Settings collaborator.
Defaults match the point-of-sale application's shipped settings; override
per deployment:

    settings = InventorySettings(allow_negative_stock=True)
    settings = load_settings("inventory.yaml")
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Self

from inventory_kernel.logging_config import get_logger

logger = get_logger("config.settings")


@dataclass(frozen=True)
class InventorySettings:
    """
    Configuration schema for stock policy, locking and reporting.

    Contract:
        Immutable once built; validated in ``__post_init__``.
    """

    # Stock policy
    allow_negative_stock: bool = False

    # Stock status: threshold used when a product has no reorder point
    default_low_stock_threshold: int = 20
    default_reorder_quantity: int = 50

    # Expiry views
    expiring_soon_days: int = 30
    expiring_report_days: int = 90

    # Concurrency
    lock_timeout_seconds: float = 5.0
    max_conflict_retries: int = 3
    retry_backoff_seconds: float = 0.05

    currency: str = "USD"

    def __post_init__(self):
        if self.default_low_stock_threshold < 0:
            raise ValueError("default_low_stock_threshold cannot be negative")
        if self.default_reorder_quantity <= 0:
            raise ValueError("default_reorder_quantity must be positive")
        if self.expiring_soon_days < 0 or self.expiring_report_days < 0:
            raise ValueError("expiry windows cannot be negative")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValueError(f"currency must be a 3-letter code, got '{self.currency}'")

        logger.info(
            "inventory_settings_initialized",
            extra={
                "allow_negative_stock": self.allow_negative_stock,
                "default_low_stock_threshold": self.default_low_stock_threshold,
                "default_reorder_quantity": self.default_reorder_quantity,
                "lock_timeout_seconds": self.lock_timeout_seconds,
                "max_conflict_retries": self.max_conflict_retries,
                "currency": self.currency,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create settings with the shipped defaults."""
        logger.info("inventory_settings_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create settings from a dictionary (e.g. parsed YAML).

        Raises:
            ValueError: on unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown inventory settings: {unknown}")
        logger.info(
            "inventory_settings_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
