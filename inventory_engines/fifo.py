"""
inventory_engines.fifo -- FIFO allocation over an immutable batch snapshot.

Responsibility:
    Given the batches of one product and a quantity to consume, decide which
    batches supply which units and at what cost.  The same function serves
    live sales (QuantityAdjuster, over row-locked batches) and historical
    COGS (reporting, over a replayed snapshot), so both always agree.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are frozen
    ``BatchLayer`` values; the result describes the consumption and can
    produce the post-consumption layers, but nothing is mutated.

Invariants enforced:
    - Consumption order is (created_at, batch_id) ascending.
    - Layers with quantity <= 0 are skipped, so a negative layer is never
      driven further negative by this path.
    - sum(allocation.quantity) + unfulfilled == requested.
    - total_cost == sum(allocation.quantity * allocation.unit_cost); no cost is
      ever attributed to unfulfilled units.

Failure modes:
    - InvalidArgumentError if quantity is not a positive integer.
    - ValueError if layers mix currencies.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.money import Money
from inventory_kernel.exceptions import InvalidArgumentError
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True, slots=True)
class BatchLayer:
    """
    Snapshot of one batch as the allocator sees it.

    ``quantity`` may be negative in a replayed snapshot (negative-stock
    override); the allocator treats such a layer as empty.
    """

    batch_id: UUID
    batch_number: str
    created_at: datetime
    unit_cost: Money
    quantity: int

    @property
    def fifo_key(self) -> tuple[datetime, str]:
        return (self.created_at, str(self.batch_id))

    def with_quantity(self, quantity: int) -> BatchLayer:
        return replace(self, quantity=quantity)


@dataclass(frozen=True, slots=True)
class Allocation:
    """Units taken from one batch: (batch_id, quantity, unit_cost)."""

    batch_id: UUID
    batch_number: str
    quantity: int
    unit_cost: Money

    @property
    def cost(self) -> Money:
        return self.unit_cost * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": str(self.batch_id),
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost.minor_units,
            "cost_cents": self.cost.minor_units,
        }


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """
    Outcome of one FIFO walk.

    Guarantees:
        - ``allocated + unfulfilled == requested``.
        - ``total_cost`` covers allocated units only.
    """

    requested: int
    allocations: tuple[Allocation, ...]
    total_cost: Money
    unfulfilled: int

    @property
    def allocated(self) -> int:
        return self.requested - self.unfulfilled

    @property
    def is_complete(self) -> bool:
        return self.unfulfilled == 0

    def quantity_for(self, batch_id: UUID) -> int:
        return sum(a.quantity for a in self.allocations if a.batch_id == batch_id)

    def apply_to(self, layers: Iterable[BatchLayer]) -> tuple[BatchLayer, ...]:
        """Return new layers with the allocated quantities removed."""
        taken: dict[str, int] = {}
        for allocation in self.allocations:
            key = str(allocation.batch_id)
            taken[key] = taken.get(key, 0) + allocation.quantity
        return tuple(
            layer.with_quantity(layer.quantity - taken.get(str(layer.batch_id), 0))
            for layer in layers
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested": self.requested,
            "allocated": self.allocated,
            "unfulfilled": self.unfulfilled,
            "total_cost_cents": self.total_cost.minor_units,
            "currency": self.total_cost.currency,
            "allocations": [a.to_dict() for a in self.allocations],
        }


def fifo_order(layers: Iterable[BatchLayer]) -> list[BatchLayer]:
    """Oldest first; equal timestamps fall back to batch id."""
    return sorted(layers, key=lambda layer: layer.fifo_key)


@traced_engine("fifo_allocation", "1.0", fingerprint_fields=("quantity",))
def allocate_fifo(
    layers: Sequence[BatchLayer],
    quantity: int,
    currency: str | None = None,
) -> AllocationResult:
    """
    Consume ``quantity`` units from ``layers`` oldest-first.

    Args:
        layers: Snapshot of the product's batches, in any order.
        quantity: Units to consume; must be > 0.
        currency: Currency of the result when no layer supplies one.

    Returns:
        AllocationResult with per-batch allocations and the unfulfilled
        remainder (0 when fully satisfied).
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgumentError("quantity", quantity, "must be a positive integer")

    result_currency = currency or (layers[0].unit_cost.currency if layers else "USD")
    total_cost = Money.zero(result_currency)
    allocations: list[Allocation] = []
    remaining = quantity

    for layer in fifo_order(layers):
        if remaining == 0:
            break
        if layer.quantity <= 0:
            continue

        take = min(remaining, layer.quantity)
        remaining -= take
        allocation = Allocation(
            batch_id=layer.batch_id,
            batch_number=layer.batch_number,
            quantity=take,
            unit_cost=layer.unit_cost,
        )
        allocations.append(allocation)
        total_cost = total_cost + allocation.cost

    if remaining:
        logger.debug(
            "fifo_allocation_short",
            extra={"requested": quantity, "unfulfilled": remaining},
        )

    return AllocationResult(
        requested=quantity,
        allocations=tuple(allocations),
        total_cost=total_cost,
        unfulfilled=remaining,
    )
