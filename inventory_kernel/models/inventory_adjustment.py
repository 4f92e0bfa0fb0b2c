"""
Module: inventory_kernel.models.inventory_adjustment
Responsibility: ORM persistence for the append-only adjustment ledger.  One
    row per batch touched by a stock movement.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    L1 -- Append-only: UPDATE and DELETE are blocked by db/immutability.py.
    L2 -- Replay order is (created_at, sequence) ascending; ``sequence`` is a
          per-product counter allocated while the product lock is held, and is
          unique per product.
    L3 -- quantity_adjusted is the signed delta actually applied to the batch:
          positive for add, negative for subtract, counted-minus-previous for
          recount.  quantity_after == quantity_before + quantity_adjusted.
    L4 -- Rows of one request share a movement_id (a FIFO sale that spans two
          batches is one movement, two rows).

Audit relevance:
    The ledger alone reproduces every batch's quantity_on_hand, and is the
    only input (besides immutable batch costs) to COGS reporting.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime, UUIDString
from inventory_kernel.domain.causes import AdjustmentCause, CauseKind, cause_from_parts


class AdjustmentType(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    RECOUNT = "recount"


class InventoryAdjustmentModel(Base):
    """
    One immutable ledger entry.

    Contract:
        Written only through AdjustmentLedger.append.  Never updated or
        deleted; corrections are new entries.
    """

    __tablename__ = "inventory_adjustments"

    __table_args__ = (
        # INVARIANT L2
        UniqueConstraint("product_id", "sequence", name="uq_adjustment_product_sequence"),
        Index("idx_adjustment_product_order", "product_id", "created_at", "sequence"),
        Index("idx_adjustment_batch", "batch_id"),
        Index("idx_adjustment_movement", "movement_id"),
        Index("idx_adjustment_cause", "cause_kind", "created_at"),
        Index("idx_adjustment_reason", "reason"),
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    movement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    adjustment_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # INVARIANT L3
    quantity_adjusted: Mapped[int] = mapped_column(BigInteger, nullable=False)

    quantity_before: Mapped[int] = mapped_column(BigInteger, nullable=False)

    quantity_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    cause_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    cause_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    # Informational snapshot of the batch unit cost; reporting re-derives cost
    unit_cost_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    negative_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    @property
    def cause(self) -> AdjustmentCause:
        return cause_from_parts(self.cause_kind, self.cause_ref)

    @property
    def is_sale(self) -> bool:
        return (
            self.adjustment_type == AdjustmentType.SUBTRACT.value
            and self.cause_kind == CauseKind.SALE.value
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment #{self.sequence} {self.adjustment_type} "
            f"{self.quantity_adjusted:+d} product={self.product_id} "
            f"batch={self.batch_id} reason={self.reason!r}>"
        )
