"""
inventory_engines.replay -- rebuild batch quantities from ledger entries.

Every batch starts at zero and each ledger entry adds its signed
``quantity_adjusted`` to its batch.  Applied in (created_at, sequence) order,
the result must equal the live ``quantity_on_hand`` of every batch; the
reporting engine stops part-way to obtain the batch state "as of" a sale.

Entries are duck-typed: anything with ``batch_id`` and ``quantity_adjusted``
attributes (ORM rows included) can be replayed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from inventory_engines.fifo import BatchLayer, fifo_order
from inventory_kernel.exceptions import InvalidArgumentError


class ReplayableEntry(Protocol):
    batch_id: UUID | None
    quantity_adjusted: int


@dataclass(frozen=True, slots=True)
class ReplayMismatch:
    batch_id: UUID
    replayed: int
    live: int


def replay_quantities(entries: Iterable[ReplayableEntry]) -> dict[UUID, int]:
    """Sum signed deltas per batch.  Entries without a batch are ignored."""
    quantities: dict[UUID, int] = {}
    for entry in entries:
        if entry.batch_id is None:
            continue
        quantities[entry.batch_id] = quantities.get(entry.batch_id, 0) + entry.quantity_adjusted
    return quantities


class BatchReplay:
    """
    Incremental replay over a fixed set of batch templates.

    Templates supply the immutable batch facts (number, created_at, cost);
    their ``quantity`` is ignored and every batch starts at zero.
    """

    def __init__(self, templates: Iterable[BatchLayer]):
        self._templates: dict[UUID, BatchLayer] = {t.batch_id: t for t in templates}
        self._quantities: dict[UUID, int] = {batch_id: 0 for batch_id in self._templates}
        self.applied = 0

    def apply(self, entry: ReplayableEntry) -> None:
        if entry.batch_id is None:
            return
        if entry.batch_id not in self._quantities:
            raise InvalidArgumentError(
                "batch_id", str(entry.batch_id), "ledger entry references an unknown batch"
            )
        self._quantities[entry.batch_id] += entry.quantity_adjusted
        self.applied += 1

    def apply_all(self, entries: Iterable[ReplayableEntry]) -> BatchReplay:
        for entry in entries:
            self.apply(entry)
        return self

    def quantity_of(self, batch_id: UUID) -> int:
        return self._quantities[batch_id]

    def quantities(self) -> dict[UUID, int]:
        return dict(self._quantities)

    def snapshot(self) -> tuple[BatchLayer, ...]:
        """Current replayed state as FIFO-ordered layers."""
        return tuple(
            fifo_order(
                template.with_quantity(self._quantities[batch_id])
                for batch_id, template in self._templates.items()
            )
        )

    def compare(self, live: Mapping[UUID, int]) -> list[ReplayMismatch]:
        """Batches whose replayed quantity differs from ``live`` (missing counts as 0)."""
        mismatches = []
        for batch_id in sorted(set(self._quantities) | set(live), key=str):
            replayed = self._quantities.get(batch_id, 0)
            actual = live.get(batch_id, 0)
            if replayed != actual:
                mismatches.append(ReplayMismatch(batch_id, replayed, actual))
        return mismatches

    def __repr__(self) -> str:
        return f"<BatchReplay batches={len(self._templates)} applied={self.applied}>"
