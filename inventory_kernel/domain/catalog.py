"""
Product catalog boundary.

Products are owned by the catalog collaborator; the inventory kernel only
reads ``price`` (for revenue) and ``reorder_point`` (for stock status).
``requires_batch_tracking`` is informational (the stock report shows it); batch
operations accept every catalog product.  Callers inject any object
satisfying ``ProductCatalog``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError, ProductNotFoundError


@dataclass(frozen=True, slots=True)
class Product:
    """Read-only view of a catalog product."""

    id: str
    name: str
    price: Money
    reorder_point: int | None = None
    # Informational; the kernel batch-tracks every product regardless
    requires_batch_tracking: bool = True
    sku: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidArgumentError("product_id", self.id, "must not be empty")
        if self.price.is_negative:
            raise InvalidArgumentError("price", str(self.price), "must not be negative")
        if self.reorder_point is not None and self.reorder_point < 0:
            raise InvalidArgumentError(
                "reorder_point", self.reorder_point, "must not be negative"
            )


@runtime_checkable
class ProductCatalog(Protocol):
    def get_product(self, product_id: str) -> Product:
        """Return the product or raise ProductNotFoundError."""
        ...

    def find_product(self, product_id: str) -> Product | None:
        ...

    def list_products(self) -> Iterator[Product]:
        ...


class InMemoryProductCatalog:
    """Dictionary-backed catalog for tests, scripts and embedded use."""

    def __init__(self, products: Iterable[Product] = ()):
        self._products: dict[str, Product] = {}
        for product in products:
            self.add(product)

    def add(self, product: Product) -> Product:
        self._products[product.id] = product
        return product

    def get_product(self, product_id: str) -> Product:
        product = self._products.get(str(product_id))
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def find_product(self, product_id: str) -> Product | None:
        return self._products.get(str(product_id))

    def list_products(self) -> Iterator[Product]:
        return iter(sorted(self._products.values(), key=lambda p: p.id))

    def __len__(self) -> int:
        return len(self._products)
